import logging
from logging.config import fileConfig
from pathlib import Path

from flask import current_app
from alembic import context

config = context.config


def _init_logging():
    ini = config.config_file_name
    if ini and Path(ini).exists():
        fileConfig(ini)
        return
    root_ini = Path(__file__).resolve().parents[1] / "alembic.ini"
    if root_ini.exists():
        fileConfig(str(root_ini))
        return
    logging.basicConfig(level=logging.INFO)


_init_logging()
logger = logging.getLogger("alembic.env")


def get_engine():
    return current_app.extensions["migrate"].db.engine


def get_engine_url():
    return get_engine().url.render_as_string(hide_password=False).replace("%", "%%")


config.set_main_option("sqlalchemy.url", get_engine_url())
target_db = current_app.extensions["migrate"].db


def get_metadata():
    if hasattr(target_db, "metadatas"):
        return target_db.metadatas[None]
    return target_db.metadata


def _autoload_models():
    """Register every estimate table/index on the metadata before comparing."""
    import gc_estimator.models  # noqa: F401  (package __init__ imports each model)
    logger.info("Loaded models: %s", ", ".join(sorted(get_metadata().tables)))


# lower(...) indexes are created with op.execute; reflection can't compare them
_EXPRESSION_INDEXES = {
    "ix_projects_lower_name",
    "ix_estimate_templates_lower_name",
    "ux_trade_categories_org_lower_key",
}


def _include_object(object, name, type_, reflected, compare_to):
    if type_ == "index" and name in _EXPRESSION_INDEXES:
        return False
    if type_ == "index" and reflected and compare_to is None:
        # present in DB, absent from models: never auto-drop
        return False
    return True


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def run_migrations_offline():
    url = config.get_main_option("sqlalchemy.url")
    _autoload_models()
    context.configure(
        url=url,
        target_metadata=get_metadata(),
        literal_binds=True,
        compare_type=True,
        include_object=_include_object,
        render_as_batch=_is_sqlite(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    def process_revision_directives(context_, revision, directives):
        if getattr(config.cmd_opts, "autogenerate", False):
            script = directives[0]
            if script.upgrade_ops.is_empty():
                directives[:] = []
                logger.info("No changes in schema detected.")

    _autoload_models()
    conf_args = {
        **current_app.extensions["migrate"].configure_args,
        "compare_type": True,
        "include_object": _include_object,
        "target_metadata": get_metadata(),
    }
    conf_args.setdefault("process_revision_directives", process_revision_directives)

    connectable = get_engine()
    with connectable.connect() as connection:
        # the embedded store is SQLite: ALTERs need batch mode there
        conf_args.setdefault("render_as_batch", connection.dialect.name == "sqlite")
        context.configure(connection=connection, **conf_args)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
