import json

from gc_estimator.services import pipeline, router


def test_store_mode_command(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["store", "mode"])
    assert result.exit_code == 0
    assert result.output.strip() == "local"

    result = runner.invoke(args=["store", "mode", "remote"])
    assert result.exit_code == 0
    assert result.output.strip() == "remote"
    assert app.config["STORE_MODE"] == "remote"


def test_seed_categories_command(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["categories", "seed", "--org-id", "org-cli"])
    assert result.exit_code == 0, result.output
    assert "Seeded 21 system categories" in result.output
    assert "Seeded 0" in runner.invoke(args=["categories", "seed", "--org-id", "org-cli"]).output


def test_recalc_export_import_commands(app, tmp_path, trade_data):
    with app.app_context():
        project = pipeline.create_project("CLI job", default_markup_percent=20, default_contingency_percent=10)
        est = router.get_estimate_for_project(project.id)
        pipeline.create_trade(est.id, trade_data(material_cost="100"))
        pipeline.create_trade(est.id, trade_data(name="Roof", labor_cost="200"))

    runner = app.test_cli_runner()
    result = runner.invoke(args=["estimates", "recalc", est.id])
    assert result.exit_code == 0, result.output
    assert "total=390.00" in result.output

    path = tmp_path / "job.json"
    result = runner.invoke(args=["estimates", "export", project.id, str(path)])
    assert result.exit_code == 0, result.output
    assert json.loads(path.read_text(encoding="utf-8"))["project"]["name"] == "CLI job"

    result = runner.invoke(args=["estimates", "import", str(path), "--org-id", "org-2"])
    assert result.exit_code == 0, result.output
    assert "total=390.00" in result.output


def test_service_errors_become_click_errors(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["estimates", "recalc", "no-such-estimate"])
    assert result.exit_code == 1
    assert "not_found" in result.output


def test_trades_import_command(app, tmp_path):
    path = tmp_path / "bid.csv"
    path.write_text("Item,Category,Labor\nHang doors,doors,450\n", encoding="utf-8")
    with app.app_context():
        project = pipeline.create_project("Doors")

    result = app.test_cli_runner().invoke(args=["trades", "import", project.id, str(path)])
    assert result.exit_code == 0, result.output
    assert "Imported 1 trade(s)" in result.output
