from decimal import Decimal
from pathlib import Path

import seed_db
from src.app_shell.context import SettlementContext


def test_demo_month_settles_to_known_figures(ctx: SettlementContext):
    seed_db.seed(ctx)

    summary = ctx.engine.run_settlement(seed_db.DEMO_MONTH)

    assert summary.total_revenue == Decimal("1750.00")
    assert summary.total_points == Decimal("100.00")
    assert summary.point_value == Decimal("17.50")

    stored = ctx.ledger.get_by_month(seed_db.DEMO_MONTH)
    assert ctx.ledger.get_earning("educator-a", stored.id).earnings == Decimal("700.00")
    assert ctx.ledger.get_earning("educator-b", stored.id).earnings == Decimal("1050.00")


def test_main_migrates_and_seeds(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("SETTLEMENT_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("SETTLEMENT_RULES_PATH", str(Path(__file__).resolve().parents[2] / "rules.yaml"))

    seed_db.main()
    assert "Seeded demo month 2026-04" in capsys.readouterr().out
    assert (tmp_path / "settlement.db").exists()
