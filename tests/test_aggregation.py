from decimal import Decimal

import pytest

from gc_estimator.records import TradeRecord
from gc_estimator.services import aggregation, pipeline, router
from gc_estimator.services.aggregation import price_trades
from gc_estimator.services.errors import NotFound, ValidationFailure
from gc_estimator.services.pricing import PricingDefaults, effective_markup, normalize_markup

D = Decimal
DEFAULTS = PricingDefaults()


def _trades(*totals, markup=None):
    return [TradeRecord(total_cost=D(str(t)), markup_percent=markup) for t in totals]


def _totals(est):
    return (est.subtotal, est.gross_profit, est.contingency, est.total_estimated)


# ---------- pure pricing ----------
def test_pricing_formula_reference_case():
    totals = price_trades(_trades(100, 200), D("20"), D("10"), DEFAULTS)
    assert totals.subtotal == D("300")
    assert totals.gross_profit == D("60")
    assert totals.contingency == D("30")
    assert totals.total_estimated == D("390")


def test_legacy_markup_prices_like_current_default():
    legacy = price_trades(_trades(100, 200), D("11.1"), D("10"), DEFAULTS)
    current = price_trades(_trades(100, 200), D("20"), D("10"), DEFAULTS)
    assert legacy == current


def test_markup_fallback_chain():
    assert effective_markup(D("15"), D("30"), DEFAULTS) == D("15")
    assert effective_markup(None, D("30"), DEFAULTS) == D("30")
    assert effective_markup(None, None, DEFAULTS) == D("20")
    # explicit zero is a real markup, not "unset"
    assert effective_markup(D("0"), D("30"), DEFAULTS) == D("0")
    assert normalize_markup("11.1", DEFAULTS) == D("20")
    assert normalize_markup(None, DEFAULTS) is None


def test_contingency_is_share_of_subtotal_not_of_profit():
    totals = price_trades(_trades(1000), D("50"), D("10"), DEFAULTS)
    assert totals.gross_profit == D("500")
    assert totals.contingency == D("100")
    assert totals.total_estimated == D("1600")


def test_per_trade_markup_overrides_default():
    trades = [TradeRecord(total_cost=D("100"), markup_percent=D("5")), TradeRecord(total_cost=D("100"))]
    totals = price_trades(trades, D("20"), D("0"), DEFAULTS)
    assert totals.gross_profit == D("25")


def test_empty_and_negative_inputs_aggregate_arithmetically():
    empty = price_trades([], D("20"), D("10"), DEFAULTS)
    assert (empty.subtotal, empty.gross_profit, empty.contingency, empty.total_estimated) == (0, 0, 0, 0)

    credit = price_trades(_trades(-50, 150), D("20"), D("10"), DEFAULTS)
    assert credit.subtotal == D("100")
    assert credit.total_estimated == D("130")


def test_rounding_is_half_up_to_cents():
    totals = price_trades(_trades("0.05"), D("50"), D("0"), DEFAULTS)
    # 0.025 -> 0.03
    assert totals.gross_profit == D("0.03")
    assert totals.total_estimated == D("0.08")


# ---------- through the pipeline, on both stores ----------
def test_pipeline_keeps_estimate_and_project_totals(app, backend, trade_data):
    with app.app_context():
        project = pipeline.create_project("Smith Residence", default_markup_percent=20, default_contingency_percent=10)
        est = router.get_estimate_for_project(project.id)

        pipeline.create_trade(est.id, trade_data(material_cost="100"))
        pipeline.create_trade(est.id, trade_data(name="Roof", category="roofing", labor_cost="200"))

        est = router.get_estimate(est.id)
        assert _totals(est) == (D("300"), D("60"), D("30"), D("390"))
        assert router.get_project(project.id).estimate_total == D("390")


def test_recalculate_estimate_is_idempotent(app, backend, trade_data):
    with app.app_context():
        project = pipeline.create_project("Idem")
        est = router.get_estimate_for_project(project.id)
        pipeline.create_trade(est.id, trade_data(labor_cost="123.45", markup_percent="12.5"))
        pipeline.create_trade(est.id, trade_data(name="Paint", material_cost="77.77"))

        first = aggregation.recalculate_estimate(est.id)
        second = aggregation.recalculate_estimate(est.id)
        assert _totals(first) == _totals(second)
        assert _totals(router.get_estimate(est.id)) == _totals(second)


def test_sub_items_drive_trade_costs(app, backend, trade_data):
    with app.app_context():
        project = pipeline.create_project("Rollup")
        est = router.get_estimate_for_project(project.id)
        trade = pipeline.create_trade(est.id, trade_data(material_cost="500"))

        pipeline.create_sub_item(trade.id, {"name": "Studs", "material_cost": "120", "labor_cost": "80"})
        sheathing = pipeline.create_sub_item(trade.id, {"name": "Sheathing", "material_cost": "60", "subcontractor_cost": "40"})

        trade = router.get_trade(trade.id)
        assert (trade.labor_cost, trade.material_cost, trade.subcontractor_cost) == (D("80"), D("180"), D("40"))
        assert trade.total_cost == D("300")
        assert router.get_estimate(est.id).subtotal == D("300")

        pipeline.update_sub_item(sheathing.id, {"subcontractor_cost": "140"})
        assert router.get_trade(trade.id).total_cost == D("400")

        pipeline.delete_sub_item(sheathing.id)
        trade = router.get_trade(trade.id)
        assert (trade.labor_cost, trade.material_cost, trade.subcontractor_cost) == (D("80"), D("120"), D("0"))
        assert router.get_estimate(est.id).subtotal == D("200")


def test_recalculate_trade_leaves_direct_costs_alone_without_sub_items(app, trade_data):
    with app.app_context():
        project = pipeline.create_project("Direct")
        est = router.get_estimate_for_project(project.id)
        trade = pipeline.create_trade(est.id, trade_data(labor_cost="10", material_cost="20", subcontractor_cost="30"))

        again = aggregation.recalculate_trade(trade.id)
        assert (again.labor_cost, again.material_cost, again.subcontractor_cost) == (D("10"), D("20"), D("30"))
        assert again.total_cost == D("60")


def test_zero_cost_trade_is_valid(app, trade_data):
    with app.app_context():
        project = pipeline.create_project("Placeholder")
        est = router.get_estimate_for_project(project.id)
        trade = pipeline.create_trade(est.id, trade_data())
        assert trade.total_cost == 0
        assert router.get_estimate(est.id).total_estimated == 0


def test_direct_cost_edit_rejected_when_trade_has_sub_items(app, trade_data):
    with app.app_context():
        project = pipeline.create_project("Guarded")
        est = router.get_estimate_for_project(project.id)
        trade = pipeline.create_trade(est.id, trade_data())
        pipeline.create_sub_item(trade.id, {"name": "Joists", "material_cost": "40"})

        with pytest.raises(ValidationFailure):
            pipeline.update_trade(trade.id, {"labor_cost": "5"})

        # non-cost edits still go through
        renamed = pipeline.update_trade(trade.id, {"name": "Floor framing", "category": "Plumbing"})
        assert renamed.name == "Floor framing"
        assert renamed.category == "plumbing"
        assert renamed.group == "mep"


def test_trade_update_and_delete_reprice_estimate(app, backend, trade_data):
    with app.app_context():
        project = pipeline.create_project("Reprice", default_markup_percent=10, default_contingency_percent=0)
        est = router.get_estimate_for_project(project.id)
        keep = pipeline.create_trade(est.id, trade_data(material_cost="100"))
        drop = pipeline.create_trade(est.id, trade_data(name="Temp fence", material_cost="50"))

        pipeline.update_trade(keep.id, {"material_cost": "200", "markup_percent": "0"})
        est = router.get_estimate(est.id)
        assert est.subtotal == D("250")
        assert est.gross_profit == D("5")

        pipeline.delete_trade(drop.id)
        est = router.get_estimate(est.id)
        assert _totals(est) == (D("200"), D("0"), D("0"), D("200"))


def test_estimate_defaults_change_reprices(app, trade_data):
    with app.app_context():
        project = pipeline.create_project("Defaults")
        est = router.get_estimate_for_project(project.id)
        pipeline.create_trade(est.id, trade_data(material_cost="1000"))

        est = pipeline.update_estimate_defaults(est.id, markup_percent="11.1", contingency_percent="5")
        assert est.gross_profit == D("200")  # legacy 11.1 prices as 20
        assert est.contingency == D("50")
        assert est.total_estimated == D("1250")


def test_bulk_create_recalculates_estimate_once(app, trade_data, monkeypatch):
    calls = []
    real = pipeline.recalculate_estimate

    def counting(estimate_id):
        calls.append(estimate_id)
        return real(estimate_id)

    with app.app_context():
        project = pipeline.create_project("Bulk")
        est = router.get_estimate_for_project(project.id)
        monkeypatch.setattr(pipeline, "recalculate_estimate", counting)

        created = pipeline.bulk_create_trades(
            est.id, [trade_data(name=f"Line {i}", material_cost=str(10 * i)) for i in range(1, 4)]
        )
        assert len(created) == 3
        assert [t.sort_order for t in created] == [0, 1, 2]
        assert calls == [est.id]
        assert router.get_estimate(est.id).subtotal == D("60")


def test_missing_estimate_is_self_healed_on_read(app, caplog):
    with app.app_context():
        # bypass the pipeline so the project has no estimate
        project = router.create_project({"name": "Orphan", "org_id": "org-test"})
        assert router.list_estimates(project_id=project.id) == []

        with caplog.at_level("WARNING", logger="gc_estimator.services.router"):
            est = router.get_estimate_for_project(project.id)
        assert est.project_id == project.id
        assert est.default_markup_percent == D("20")
        assert "Self-heal" in caplog.text

        assert router.get_estimate_for_project(project.id).id == est.id
        assert len(router.list_estimates(project_id=project.id)) == 1


def test_delete_project_cascades(app, backend, trade_data):
    with app.app_context():
        project = pipeline.create_project("Doomed")
        est = router.get_estimate_for_project(project.id)
        trade = pipeline.create_trade(est.id, trade_data(material_cost="10"))
        sub = pipeline.create_sub_item(trade.id, {"name": "Nails", "material_cost": "10"})

        pipeline.delete_project(project.id)
        for getter, record_id in (
            (router.get_project, project.id),
            (router.get_estimate, est.id),
            (router.get_trade, trade.id),
            (router.get_sub_item, sub.id),
        ):
            with pytest.raises(NotFound):
                getter(record_id)


def test_project_status_moves_forward_only(app):
    with app.app_context():
        project = pipeline.create_project("Status")
        assert project.status == "estimating"

        project = pipeline.advance_project_status(project.id, "in-progress")
        assert project.status == "in-progress"
        assert "in_progress_at" in project.meta

        with pytest.raises(ValidationFailure):
            pipeline.advance_project_status(project.id, "estimating")

        project = pipeline.advance_project_status(project.id, "complete")
        assert pipeline.reopen_project(project.id).status == "estimating"


def test_vendor_quote_becomes_cost_entry(app, trade_data):
    with app.app_context():
        project = pipeline.create_project("Quoted", default_markup_percent=0, default_contingency_percent=0)
        est = router.get_estimate_for_project(project.id)
        trade = pipeline.create_trade(est.id, trade_data(category="hvac", name="HVAC", material_cost="300"))

        quoted = pipeline.apply_vendor_quote(
            trade.id, vendor="Cool Air LLC", amount="1500", quote_reference="Q-1042",
            quote_file_url="https://files.example/q-1042.pdf",
        )
        assert quoted.subcontractor_cost == D("1500")
        assert quoted.total_cost == D("1800")
        assert quoted.estimate_status == "quoted"
        assert quoted.is_subcontracted is True
        assert quoted.quote_file_url == "https://files.example/q-1042.pdf"
        assert router.get_estimate(est.id).total_estimated == D("1800")

        with pytest.raises(ValidationFailure):
            pipeline.apply_vendor_quote(trade.id, vendor="X", amount="1", cost_type="equipment")


def test_estimate_warnings(app, trade_data):
    with app.app_context():
        project = pipeline.create_project("Check")
        est = router.get_estimate_for_project(project.id)

        analysis = pipeline.estimate_warnings(est.id)
        assert not analysis.is_complete
        assert analysis.warnings == ["No trades added to estimate"]

        pipeline.create_trade(est.id, trade_data(quantity="0", material_cost="10"))
        pipeline.create_trade(est.id, trade_data(name="Tile", material_cost="10", waste_factor="25"))
        analysis = pipeline.estimate_warnings(est.id)
        assert analysis.trade_count == 2
        assert "1 trade(s) with zero cost or quantity" in analysis.warnings
        assert "1 trade(s) with waste factor over 20%" in analysis.warnings


def test_duplicate_project_copies_trades_and_sub_items(app, trade_data):
    with app.app_context():
        source = pipeline.create_project("Model home")
        est = router.get_estimate_for_project(source.id)
        trade = pipeline.create_trade(est.id, trade_data(material_cost="50"))
        pipeline.create_sub_item(trade.id, {"name": "Studs", "material_cost": "75"})
        pipeline.create_trade(est.id, trade_data(name="Bath", category="bath", labor_cost="25"))

        copy = pipeline.duplicate_project(source.id, "Lot 12")
        assert copy.id != source.id
        assert copy.estimate_total == router.get_project(source.id).estimate_total

        copied = router.list_trades(estimate_id=router.get_estimate_for_project(copy.id).id)
        assert [t.name for t in copied] == ["Framing package", "Bath"]
        assert not {t.id for t in copied} & {t.id for t in router.list_trades(estimate_id=est.id)}
        assert len(router.list_sub_items(trade_id=copied[0].id)) == 1


def test_non_finite_costs_are_stored_as_zero(app, trade_data):
    with app.app_context():
        est = router.get_estimate_for_project(pipeline.create_project("Garage").id)
        trade = pipeline.create_trade(est.id, trade_data(labor_cost="Infinity", material_cost="NaN", subcontractor_cost="40"))
        assert trade.labor_cost == 0
        assert trade.material_cost == 0
        assert trade.total_cost == D("40")
        assert router.get_estimate(est.id).subtotal == D("40")


def test_duplicate_project_drops_status_stamps(app):
    with app.app_context():
        source = pipeline.create_project("Spec house", meta={"lot": "14", "permit": "B-2231"})
        pipeline.advance_project_status(source.id, "in-progress")
        assert "in_progress_at" in router.get_project(source.id).meta

        copy = pipeline.duplicate_project(source.id, "Spec house 2")
        assert copy.status == "estimating"
        assert copy.meta == {"lot": "14", "permit": "B-2231"}
        assert "in_progress_at" in router.get_project(source.id).meta
