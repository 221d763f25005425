import argparse
import logging
import sys
from datetime import date, datetime
from pathlib import Path

from src.adapters.clock import FixedClock
from src.adapters.sqlite.migrator import MigrationError, SQLiteMigrator
from src.app_shell.config import resolve_db_path
from src.app_shell.context import SettlementContext
from src.domain.errors import (
    ConcurrencyConflictError,
    InsufficientBalanceError,
    InvalidWithdrawalError,
    SettlementError,
)
from src.domain.months import parse_month
from src.rules.loader import default_rules_path, load_rules
from src.rules.models import Rules

logger = logging.getLogger("cli")

MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "migrations"

# Exit codes
EXIT_ERROR = 1
EXIT_CONFLICT = 2
EXIT_REJECTED = 3


def get_rules() -> Rules:
    rules_path = default_rules_path()
    try:
        return load_rules(rules_path)
    except FileNotFoundError:
        logger.error("Rules file %s not found.", rules_path)
    except ValueError as e:
        logger.error("Invalid rules in %s: %s", rules_path, e)
    sys.exit(EXIT_ERROR)


def get_context(rules: Rules, as_of: datetime | None = None) -> SettlementContext:
    clock = FixedClock(as_of) if as_of else None
    return SettlementContext.create(resolve_db_path(rules), rules, clock=clock)


def month_arg(raw: str) -> date:
    try:
        return parse_month(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def handle_migrate(rules: Rules, args: argparse.Namespace) -> None:
    db_path = resolve_db_path(rules)
    applied = SQLiteMigrator(str(db_path), str(MIGRATIONS_DIR)).run_migrations()
    print(f"Applied {len(applied)} migration(s) to {db_path}.")


def handle_settle(ctx: SettlementContext, args: argparse.Namespace) -> None:
    summary = ctx.engine.run_settlement(args.month)
    print(f"Settlement {summary.month:%Y-%m} finalized.")
    print(f"  Subscribers:  {summary.total_subscribers}")
    print(f"  Distributable: {summary.total_revenue}")
    print(f"  Total points: {summary.total_points}")
    print(f"  Point value:  {summary.point_value}")
    print(f"  Educators:    {summary.educator_count}")


def handle_preview(ctx: SettlementContext, args: argparse.Namespace) -> None:
    preview = ctx.engine.preview_settlement(args.month)
    status = preview.existing_status or "not run"
    print(f"Preview {preview.month:%Y-%m} (stored status: {status})")
    print(f"  Gross revenue: {preview.gross_revenue} from {preview.total_subscribers} subscribers")
    print(f"  Distributable: {preview.distributable_revenue}")
    print(f"  Total points:  {preview.total_points}")
    print(f"  Point value:   {preview.point_value}")
    for educator in preview.educators:
        print(f"  {educator.educator_id}: {educator.points} points -> {educator.earnings}")


def handle_balance(ctx: SettlementContext, args: argparse.Namespace) -> None:
    balance = ctx.engine.get_educator_balance(args.educator_id)
    estimate = balance.current_month
    print(f"Educator {balance.educator_id}")
    print(f"  Finalized balance: {balance.finalized_balance}")
    print(f"  {estimate.month:%Y-%m} estimate: {estimate.earnings} ({estimate.note})")
    print(f"  Total:             {balance.total_balance}")
    for line in balance.monthly_breakdown:
        print(
            f"  {line.month:%Y-%m} [{line.status}] earned {line.earnings}, "
            f"withdrawn {line.withdrawn}, available {line.available_balance}"
        )


def handle_withdraw(ctx: SettlementContext, args: argparse.Namespace) -> None:
    receipt = ctx.engine.withdraw(args.educator_id, args.amount)
    print(f"Withdrew {receipt.record.amount} for {args.educator_id}.")
    print(f"Remaining finalized balance: {receipt.finalized_balance}")


def handle_withdrawals(ctx: SettlementContext, args: argparse.Namespace) -> None:
    records = ctx.engine.list_withdrawals(args.educator_id)
    if not records:
        print(f"No withdrawals for {args.educator_id}.")
        return
    for record in records:
        months = ", ".join(
            f"{a.settlement_month:%Y-%m}={a.amount}" for a in record.allocations
        )
        print(f"{record.created_at:%Y-%m-%d %H:%M} {record.amount} ({months})")


def handle_settlements(ctx: SettlementContext, args: argparse.Namespace) -> None:
    for settlement in ctx.engine.list_settlements():
        print(
            f"{settlement.month:%Y-%m} [{settlement.status}] "
            f"revenue {settlement.total_revenue}, points {settlement.total_points}, "
            f"point value {settlement.point_value}"
        )


HANDLERS = {
    "settle": handle_settle,
    "preview": handle_preview,
    "balance": handle_balance,
    "withdraw": handle_withdraw,
    "withdrawals": handle_withdrawals,
    "settlements": handle_settlements,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Educator settlement CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate
    subparsers.add_parser("migrate", help="Apply pending database migrations")

    # settle
    settle_parser = subparsers.add_parser("settle", help="Run and finalize a month")
    settle_parser.add_argument("--month", required=True, type=month_arg, help="YYYY-MM")

    # preview
    preview_parser = subparsers.add_parser("preview", help="Dry-run a month's settlement")
    preview_parser.add_argument("--month", required=True, type=month_arg, help="YYYY-MM")

    # balance
    balance_parser = subparsers.add_parser("balance", help="Show an educator's balance")
    balance_parser.add_argument("educator_id")
    balance_parser.add_argument(
        "--as-of",
        type=datetime.fromisoformat,
        help="Estimate the current month as of this ISO timestamp",
    )

    # withdraw
    withdraw_parser = subparsers.add_parser("withdraw", help="Withdraw from finalized balance")
    withdraw_parser.add_argument("educator_id")
    withdraw_parser.add_argument("amount")

    # withdrawals
    history_parser = subparsers.add_parser("withdrawals", help="List an educator's withdrawals")
    history_parser.add_argument("educator_id")

    # settlements
    subparsers.add_parser("settlements", help="List settlements, newest first")

    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    rules = get_rules()

    try:
        if args.command == "migrate":
            handle_migrate(rules, args)
            return
        ctx = get_context(rules, as_of=getattr(args, "as_of", None))
        HANDLERS[args.command](ctx, args)
    except (InsufficientBalanceError, InvalidWithdrawalError) as e:
        logger.error("Rejected: %s", e)
        sys.exit(EXIT_REJECTED)
    except ConcurrencyConflictError as e:
        logger.error("Conflict, retry later: %s", e)
        sys.exit(EXIT_CONFLICT)
    except SettlementError as e:
        logger.error("Settlement failed: %s", e)
        sys.exit(EXIT_ERROR)
    except MigrationError as e:
        logger.error("%s", e)
        sys.exit(EXIT_ERROR)


if __name__ == "__main__":
    main()
