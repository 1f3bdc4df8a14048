from decimal import Decimal

import pytest

from gc_estimator.services import pipeline, router, templates
from gc_estimator.services.errors import NotFound, ValidationFailure

D = Decimal


def _estimate(name, **defaults):
    project = pipeline.create_project(name, **defaults)
    return router.get_estimate_for_project(project.id)


def test_template_round_trip(app, backend, trade_data):
    with app.app_context():
        source = _estimate("Ranch 1400", default_markup_percent=18)
        a = pipeline.create_trade(source.id, trade_data(name="Framing", material_cost="9000", labor_cost="4000", markup_percent="15"))
        b = pipeline.create_trade(source.id, trade_data(name="Plumbing rough", category="plumbing", subcontractor_cost="6500", markup_percent="0"))
        pipeline.apply_vendor_quote(b.id, vendor="Pipe Pros", amount="6400")

        template = templates.create_template_from_estimate(source.id, "Ranch base", description="1400 sqft ranch")
        assert template.usage_count == 0
        assert len(template.trades) == 2
        for snap in template.trades:
            assert "id" not in snap and "estimate_id" not in snap
            assert "quote_vendor" not in snap and "estimate_status" not in snap
        assert template.trades[1]["group"] == "mep"

        target = _estimate("Lot 7")
        created = templates.apply_template(template.id, target.id)
        assert len(created) == 2
        assert not {t.id for t in created} & {a.id, b.id}
        assert all(t.estimate_id == target.id for t in created)

        by_name = {t.name: t for t in router.list_trades(estimate_id=target.id)}
        assert set(by_name) == {"Framing", "Plumbing rough"}
        assert by_name["Framing"].material_cost == D("9000")
        assert by_name["Framing"].labor_cost == D("4000")
        assert by_name["Framing"].markup_percent == D("15")
        assert by_name["Plumbing rough"].subcontractor_cost == D("6400")
        assert by_name["Plumbing rough"].markup_percent == D("0")
        assert by_name["Plumbing rough"].estimate_status == "budget"

        assert router.get_template(template.id).usage_count == 1
        templates.apply_template(template.id, _estimate("Lot 8").id)
        assert router.get_template(template.id).usage_count == 2

        # source untouched
        assert len(router.list_trades(estimate_id=source.id)) == 2


def test_apply_fills_unset_markup_from_template_default(app, trade_data):
    with app.app_context():
        template = templates.create_template(
            "Bare shell",
            [trade_data(name="Slab", material_cost="100")],
            default_markup_percent="25",
        )
        target = _estimate("Shell", default_markup_percent=5, default_contingency_percent=0)
        (trade,) = templates.apply_template(template.id, target.id)
        assert trade.markup_percent == D("25")
        assert router.get_estimate(target.id).gross_profit == D("25")


def test_legacy_markup_default_normalized_on_create(app, trade_data):
    with app.app_context():
        template = templates.create_template("Old", [trade_data()], default_markup_percent="11.1")
        assert template.default_markup_percent == D("20")

        blank = templates.create_template("Blank", [])
        assert blank.default_markup_percent == D("20")
        assert blank.default_contingency_percent == D("10")


def test_apply_to_missing_estimate_writes_nothing(app, trade_data):
    with app.app_context():
        template = templates.create_template("T", [trade_data()])
        with pytest.raises(NotFound):
            templates.apply_template(template.id, "missing-estimate")
        assert router.get_template(template.id).usage_count == 0
        with pytest.raises(NotFound):
            templates.apply_template("missing-template", _estimate("X").id)


def test_usage_counter_failure_is_logged_not_raised(app, caplog):
    with app.app_context():
        with caplog.at_level("WARNING", logger="gc_estimator.services.templates"):
            templates.increment_usage("missing-template")
        assert "usage counter not incremented" in caplog.text


def test_plan_links_are_idempotent(app):
    with app.app_context():
        template = templates.create_template("Linked", [])
        templates.link_plan(template.id, "plan-a")
        templates.link_plan(template.id, "plan-a")
        template = templates.link_plan(template.id, "plan-b")
        assert template.linked_plan_ids == ["plan-a", "plan-b"]

        template = templates.unlink_plan(template.id, "plan-a")
        assert template.linked_plan_ids == ["plan-b"]
        assert templates.unlink_plan(template.id, "plan-zzz").linked_plan_ids == ["plan-b"]


def test_update_and_delete_template(app, trade_data):
    with app.app_context():
        template = templates.create_template("Draft", [trade_data()])
        updated = templates.update_template(template.id, name="Final", default_contingency_percent="12")
        assert updated.name == "Final"
        assert updated.default_contingency_percent == D("12")
        assert updated.trades == template.trades

        with pytest.raises(ValidationFailure):
            templates.update_template(template.id, name="  ")

        assert [t.id for t in templates.list_templates()] == [template.id]
        templates.delete_template(template.id)
        assert templates.list_templates() == []


def test_apply_template_recalculates_estimate_once(app, trade_data, monkeypatch):
    with app.app_context():
        template = templates.create_template(
            "Three trades",
            [
                trade_data(name="Footings", material_cost="1200"),
                trade_data(name="Sheathing", material_cost="800"),
                trade_data(name="Trusses", subcontractor_cost="3100"),
            ],
        )
        target = _estimate("Lot 3")

        calls = []
        real = pipeline.recalculate_estimate

        def counting(estimate_id):
            calls.append(estimate_id)
            return real(estimate_id)

        monkeypatch.setattr(pipeline, "recalculate_estimate", counting)
        created = templates.apply_template(template.id, target.id)

        assert len(created) == 3
        assert calls == [target.id]
        assert router.get_estimate(target.id).subtotal == D("5100")
