import json
from functools import wraps

import click
from flask.cli import with_appcontext

from gc_estimator.services import router
from gc_estimator.services.aggregation import recalculate_estimate, recalculate_trade
from gc_estimator.services.categories import seed_system_categories
from gc_estimator.services.errors import ServiceError
from gc_estimator.services.importer import import_file
from gc_estimator.services.transfer import export_project, import_project


def store_option(fn):
    """--store local|remote: route this command's calls to that store."""

    @click.option("--store", type=click.Choice([router.LOCAL, router.REMOTE]), default=None,
                  help="Store to run against (default: STORE_MODE).")
    @wraps(fn)
    def wrapper(*args, store=None, **kwargs):
        try:
            if store:
                router.set_store_mode(store)
            return fn(*args, **kwargs)
        except ServiceError as e:
            raise click.ClickException(f"{e.code}: {e}") from e

    return wrapper


@click.group()
def estimates():
    """Estimate totals and project export/import."""


@estimates.command("recalc")
@click.argument("estimate_id")
@with_appcontext
@store_option
def estimates_recalc(estimate_id):
    for trade in router.list_trades(estimate_id=estimate_id):
        recalculate_trade(trade.id)
    est = recalculate_estimate(estimate_id)
    click.echo(
        f"Estimate {est.id}: subtotal={est.subtotal} gross_profit={est.gross_profit} "
        f"contingency={est.contingency} total={est.total_estimated}"
    )


@estimates.command("export")
@click.argument("project_id")
@click.argument("path", type=click.Path(dir_okay=False, writable=True))
@with_appcontext
@store_option
def estimates_export(project_id, path):
    snapshot = export_project(project_id)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(snapshot, fh, indent=2)
    click.echo(f"Exported project {project_id} ({len(snapshot['trades'])} trades) -> {path}")


@estimates.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--org-id", default=None, help="Organization to own the imported project.")
@with_appcontext
@store_option
def estimates_import(path, org_id):
    with open(path, encoding="utf-8") as fh:
        snapshot = json.load(fh)
    project = import_project(snapshot, org_id=org_id)
    click.echo(f"Imported project id={project.id} name={project.name!r} total={project.estimate_total}")


@click.group()
def categories():
    """Trade category registry."""


@categories.command("seed")
@click.option("--org-id", default=None, help="Organization to seed (default: ORG_ID).")
@with_appcontext
@store_option
def categories_seed(org_id):
    created = seed_system_categories(org_id)
    click.echo(f"Seeded {created} system categories")


@click.group()
def trades():
    """Trade line items."""


@trades.command("import")
@click.argument("project_id")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@with_appcontext
@store_option
def trades_import(project_id, path):
    result = import_file(project_id, path)
    for line in result.warnings:
        click.echo(f"warning: {line}")
    for line in result.errors:
        click.echo(f"error: {line}", err=True)
    click.echo(f"Imported {result.imported} trade(s)")
    if not result.success:
        raise click.ClickException("Import failed")


@click.group()
def store():
    """Backend router."""


@store.command("mode")
@click.argument("mode", required=False, type=click.Choice([router.LOCAL, router.REMOTE]))
@with_appcontext
def store_mode(mode):
    """Show the active store, or switch it for the rest of this process."""
    if mode:
        router.set_store_mode(mode)
    click.echo(router.store_mode())


def register_cli(app):
    app.cli.add_command(estimates)
    app.cli.add_command(categories)
    app.cli.add_command(trades)
    app.cli.add_command(store)
