"""
Settlement component - monthly close of the books and the educator ledger.

Composes revenue and points into one settlement per calendar month, allocates
earnings by points, and serves balances and FIFO withdrawals.

Key behaviors:
- A finalized month is returned from storage with no recomputation or write
- Computation is read-only; only after it succeeds does a run claim the month
  (status calculating, fresh run_id)
- The final commit is a compare-and-swap on (status, run_id), so only one run
  can finalize a month
- All earnings rows and the finalized status are written in one transaction
- Recalculation never erases withdrawal history
- Withdrawals check, deduct and record inside one serialized transaction
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import date
from decimal import Decimal, InvalidOperation
from uuid import UUID, uuid4

from src.components.points import PointsCalculator, load_config_from_rules as load_points_config
from src.components.points.models import MonthlyPoints
from src.components.points.ports import EngagementReadPort
from src.components.revenue import RevenueCalculator, load_config_from_rules as load_revenue_config
from src.components.revenue.ports import SubscriptionReadPort
from src.domain.entities import (
    EducatorEarning,
    MonthlySettlement,
    SettlementStatus,
    WithdrawalAllocation,
    WithdrawalRecord,
)
from src.domain.errors import (
    ConcurrencyConflictError,
    DataIntegrityError,
    InsufficientBalanceError,
    InvalidWithdrawalError,
    SettlementError,
)
from src.domain.months import month_start, month_window, round_money
from src.rules.models import Rules

from .models import (
    BalanceLine,
    CurrentMonthEstimate,
    EarningAllocation,
    EducatorBalance,
    LedgerLine,
    PreviewSummary,
    SettlementComputation,
    SettlementConfig,
    SettlementDetails,
    SettlementPreview,
    SettlementSummary,
    WithdrawalReceipt,
)
from .ports import SettlementLedgerPort, TimePort

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


# --- Pure Functions ---


def compute_point_value(distributable: Decimal, total_points: Decimal) -> Decimal:
    """Currency value of one point; zero activity means zero, not a fault."""
    if total_points <= 0:
        return ZERO
    return distributable / total_points


def allocate_earnings(
    points_by_educator: dict[str, MonthlyPoints],
    point_value: Decimal,
) -> tuple[EarningAllocation, ...]:
    """Earnings per educator, skipping educators with no points, ordered by id."""
    allocations = []
    for educator_id in sorted(points_by_educator):
        points = points_by_educator[educator_id]
        if points.total_points <= 0:
            continue
        allocations.append(
            EarningAllocation(
                educator_id=educator_id,
                points=points.total_points,
                earnings=round_money(points.total_points * point_value),
                breakdown=points.breakdown,
            )
        )
    return tuple(allocations)


def recalculated_earning(
    existing: EducatorEarning | None,
    settlement_id: UUID,
    allocation: EarningAllocation,
) -> EducatorEarning:
    """
    Earning row for an allocation, merged with any stored row.

    withdrawn is monotonic: a row that has paid out cannot be recalculated.
    """
    if existing is None:
        return EducatorEarning(
            user_id=allocation.educator_id,
            settlement_id=settlement_id,
            points=allocation.points,
            earnings=allocation.earnings,
            withdrawn=ZERO,
            available_balance=allocation.earnings,
        )

    if existing.withdrawn > 0:
        raise DataIntegrityError(
            f"Earning for educator {existing.user_id} already has "
            f"{existing.withdrawn} withdrawn; refusing to recalculate",
        )

    return existing.model_copy(
        update={
            "points": allocation.points,
            "earnings": allocation.earnings,
            "available_balance": allocation.earnings - existing.withdrawn,
        }
    )


def normalize_withdrawal_amount(amount: Decimal | int | float | str) -> Decimal:
    """Coerce to Decimal and require a positive whole number of cents."""
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation as e:
        raise InvalidWithdrawalError(f"Invalid withdrawal amount: {amount!r}") from e

    if not value.is_finite() or value <= 0:
        raise InvalidWithdrawalError(f"Withdrawal amount must be positive: {amount}")
    if value != round_money(value):
        raise InvalidWithdrawalError(f"Withdrawal amount has sub-cent precision: {amount}")
    return round_money(value)


def plan_fifo_withdrawal(
    lines: list[LedgerLine],
    amount: Decimal,
) -> list[tuple[LedgerLine, Decimal]]:
    """
    Split a withdrawal across finalized rows, oldest month first.

    Raises InsufficientBalanceError before planning anything when the rows
    cannot cover the amount. The returned deductions sum to exactly amount.
    """
    available = sum((line.earning.available_balance for line in lines), ZERO)
    if amount > available:
        raise InsufficientBalanceError(requested=amount, available=available)

    plan: list[tuple[LedgerLine, Decimal]] = []
    remaining = amount
    for line in sorted(lines, key=lambda item: item.settlement.month):
        if remaining == 0:
            break
        deduct = min(remaining, line.earning.available_balance)
        if deduct <= 0:
            continue
        plan.append((line, deduct))
        remaining -= deduct

    return plan


def unavailable_estimate(month: date, error: SettlementError) -> CurrentMonthEstimate:
    return CurrentMonthEstimate(
        month=month,
        points=ZERO,
        earnings=ZERO,
        point_value=ZERO,
        total_points=ZERO,
        total_subscribers=0,
        note=f"Estimate unavailable ({type(error).__name__}): {error}",
    )


def summary_from(settlement: MonthlySettlement, educator_count: int) -> SettlementSummary:
    return SettlementSummary(
        id=settlement.id,
        month=settlement.month,
        total_subscribers=settlement.total_subscribers,
        total_revenue=settlement.total_revenue,
        total_points=settlement.total_points,
        point_value=settlement.point_value,
        educator_count=educator_count,
    )


def build_preview(
    computation: SettlementComputation,
    existing_status: SettlementStatus | None = None,
) -> SettlementPreview:
    educators = tuple(
        sorted(computation.allocations, key=lambda a: (-a.earnings, a.educator_id))
    )
    total = sum((a.earnings for a in educators), ZERO)
    average = round_money(total / len(educators)) if educators else ZERO

    return SettlementPreview(
        month=computation.month,
        total_subscribers=computation.revenue.subscriber_count,
        gross_revenue=computation.revenue.total_revenue,
        distributable_revenue=computation.distributable_revenue,
        total_points=computation.points.total_points,
        point_value=computation.point_value,
        points_breakdown=computation.points.breakdown,
        educators=educators,
        summary=PreviewSummary(
            total_earnings_to_distribute=total,
            average_earnings=average,
            top_earner=educators[0] if educators else None,
        ),
        existing_status=existing_status,
    )


@contextmanager
def in_phase(month: date | None, phase: str) -> Iterator[None]:
    """Attach month/phase context to settlement errors raised inside the block."""
    try:
        yield
    except SettlementError as e:
        if e.month is None:
            e.month = month
        if e.phase is None:
            e.phase = phase
        raise


# --- Service ---


class SettlementEngine:
    """
    Monthly settlement orchestration and educator balance ledger.

    Collaborators are injected; an engine holds no state between calls.
    """

    def __init__(
        self,
        revenue: RevenueCalculator,
        points: PointsCalculator,
        ledger: SettlementLedgerPort,
        clock: TimePort,
        config: SettlementConfig | None = None,
    ) -> None:
        self.revenue = revenue
        self.points = points
        self.ledger = ledger
        self.clock = clock
        self.config = config or SettlementConfig()

    # --- Computation (read-only) ---

    def compute_settlement(self, month: date) -> SettlementComputation:
        """Revenue and points read in parallel, then combined into allocations."""
        window = month_window(month)
        with in_phase(window.start, "compute"):
            with ThreadPoolExecutor(max_workers=self.config.max_parallel_reads) as pool:
                revenue_f = pool.submit(self.revenue.compute_monthly_revenue, window.start)
                points_f = pool.submit(self.points.compute_month_snapshot, window.start)
                revenue = revenue_f.result()
                snapshot = points_f.result()

        total_points = snapshot.total

        distributable = self.revenue.compute_distributable_revenue(revenue.total_revenue)
        point_value = compute_point_value(distributable, total_points.total_points)

        logger.info(
            "Settlement math for %s: distributable=%s points=%s point_value=%s",
            window.label,
            distributable,
            total_points.total_points,
            point_value,
        )
        return SettlementComputation(
            month=window.start,
            revenue=revenue,
            points=total_points,
            distributable_revenue=distributable,
            point_value=point_value,
            allocations=allocate_earnings(snapshot.by_educator, point_value),
        )

    def preview_settlement(self, month: date) -> SettlementPreview:
        """What run_settlement would produce for the month; writes nothing."""
        key = month_start(month)
        computation = self.compute_settlement(key)
        existing = self.ledger.get_by_month(key)
        return build_preview(computation, existing.status if existing else None)

    # --- Close the books ---

    def run_settlement(self, month: date) -> SettlementSummary:
        key = month_start(month)
        label = key.strftime("%Y-%m")

        existing = self.ledger.get_by_month(key)
        if existing is not None and existing.is_finalized:
            logger.info("Settlement for %s already finalized", label)
            return self._cached_summary(existing)

        # Compute first so missing reference data aborts before any write
        computation = self.compute_settlement(key)

        run_id = uuid4()
        claimed = self._claim(key, run_id)
        if claimed.is_finalized:
            logger.info("Settlement for %s finalized by another run", label)
            return self._cached_summary(claimed)

        settlement = self._commit(key, run_id, computation)

        logger.info(
            "Settlement finalized for %s: %d educators, point_value=%s",
            label,
            len(computation.allocations),
            settlement.point_value,
        )
        return summary_from(settlement, len(computation.allocations))

    def _cached_summary(self, settlement: MonthlySettlement) -> SettlementSummary:
        return summary_from(settlement, self.ledger.count_earnings(settlement.id))

    def _claim(self, month: date, run_id: UUID) -> MonthlySettlement:
        with in_phase(month, "claim"), self.ledger.unit_of_work() as uow:
            current = uow.get_by_month(month)
            if current is not None and current.is_finalized:
                return current

            if current is None:
                current = MonthlySettlement(month=month, created_at=self.clock.now_utc())
            elif current.run_id is not None:
                logger.warning(
                    "Taking over settlement for %s from run %s",
                    month.strftime("%Y-%m"),
                    current.run_id,
                )

            claimed = current.model_copy(update={"status": "calculating", "run_id": run_id})
            uow.save_settlement(claimed)
            uow.commit()
            return claimed

    def _commit(
        self,
        month: date,
        run_id: UUID,
        computation: SettlementComputation,
    ) -> MonthlySettlement:
        with in_phase(month, "commit"), self.ledger.unit_of_work() as uow:
            current = uow.get_by_month(month)
            if current is None or current.is_finalized or current.run_id != run_id:
                logger.warning("Lost settlement claim for %s", month.strftime("%Y-%m"))
                raise ConcurrencyConflictError(
                    "Settlement is being finalized by another run",
                    month=month,
                    phase="commit",
                )

            for allocation in computation.allocations:
                existing = uow.get_earning(allocation.educator_id, current.id)
                uow.save_earning(recalculated_earning(existing, current.id, allocation))
                logger.debug(
                    "Educator %s: %s points = %s",
                    allocation.educator_id,
                    allocation.points,
                    allocation.earnings,
                )

            finalized = current.model_copy(
                update={
                    "total_subscribers": computation.revenue.subscriber_count,
                    "gross_revenue": computation.revenue.total_revenue,
                    "total_revenue": computation.distributable_revenue,
                    "total_points": computation.points.total_points,
                    "point_value": computation.point_value,
                    "status": "finalized",
                    "finalized_at": self.clock.now_utc(),
                }
            )
            uow.save_settlement(finalized)
            uow.commit()
            return finalized

    # --- Queries ---

    def get_settlement(self, month: date) -> SettlementDetails | None:
        settlement = self.ledger.get_by_month(month_start(month))
        if settlement is None:
            return None
        earnings = self.ledger.list_earnings_for_settlement(settlement.id)
        return SettlementDetails(settlement=settlement, earnings=tuple(earnings))

    def list_settlements(self) -> list[MonthlySettlement]:
        return self.ledger.list_settlements()

    def list_withdrawals(self, educator_id: str) -> list[WithdrawalRecord]:
        return self.ledger.list_withdrawals(educator_id)

    # --- Balances ---

    def estimate_current_month(self, educator_id: str) -> CurrentMonthEstimate:
        """Live estimate for the in-progress month, scoped to one educator."""
        window = month_window(self.clock.now_utc())

        existing = self.ledger.get_by_month(window.start)
        if existing is not None and existing.is_finalized:
            return CurrentMonthEstimate(
                month=window.start,
                points=ZERO,
                earnings=ZERO,
                point_value=existing.point_value,
                total_points=existing.total_points,
                total_subscribers=existing.total_subscribers,
                note="Month already finalized; earnings are in the finalized balance",
            )

        with in_phase(window.start, "estimate"):
            with ThreadPoolExecutor(max_workers=self.config.max_parallel_reads) as pool:
                revenue_f = pool.submit(self.revenue.compute_monthly_revenue, window.start)
                points_f = pool.submit(self.points.compute_month_snapshot, window.start)
                revenue = revenue_f.result()
                snapshot = points_f.result()

        total_points = snapshot.total
        mine = snapshot.for_educator(educator_id)
        distributable = self.revenue.compute_distributable_revenue(revenue.total_revenue)
        point_value = compute_point_value(distributable, total_points.total_points)

        if revenue.subscriber_count == 0:
            note = "No paid subscribers - earnings will be 0"
        else:
            note = "Estimate - will be finalized at month end"

        return CurrentMonthEstimate(
            month=window.start,
            points=mine.total_points,
            earnings=round_money(mine.total_points * point_value),
            point_value=point_value,
            total_points=total_points.total_points,
            total_subscribers=revenue.subscriber_count,
            note=note,
        )

    def _estimate_or_unavailable(self, educator_id: str) -> CurrentMonthEstimate:
        """The live estimate, or a zero estimate naming the failure."""
        try:
            return self.estimate_current_month(educator_id)
        except SettlementError as e:
            logger.warning("Current-month estimate unavailable for %s: %s", educator_id, e)
            return unavailable_estimate(month_start(self.clock.now_utc()), e)

    def get_educator_balance(self, educator_id: str) -> EducatorBalance:
        """
        Finalized (payable) balance plus an advisory estimate for the current month.

        A failing estimate degrades to zero; the finalized figures are still served.
        """
        lines = self.ledger.list_ledger_lines(educator_id)
        finalized_balance = sum(
            (line.earning.available_balance for line in lines if line.settlement.is_finalized),
            ZERO,
        )
        estimate = self._estimate_or_unavailable(educator_id)

        return EducatorBalance(
            educator_id=educator_id,
            finalized_balance=finalized_balance,
            current_month_estimate=estimate.earnings,
            total_balance=finalized_balance + estimate.earnings,
            monthly_breakdown=tuple(
                BalanceLine(
                    month=line.settlement.month,
                    points=line.earning.points,
                    earnings=line.earning.earnings,
                    withdrawn=line.earning.withdrawn,
                    available_balance=line.earning.available_balance,
                    point_value=line.settlement.point_value,
                    status=line.settlement.status,
                )
                for line in lines
            ),
            current_month=estimate,
        )

    # --- Withdrawals ---

    def process_withdrawal(
        self,
        educator_id: str,
        amount: Decimal | int | float | str,
    ) -> bool:
        """
        Deduct amount from finalized balances, oldest month first.

        Fully applied or fully rejected: InsufficientBalanceError leaves the
        ledger untouched.
        """
        self.withdraw(educator_id, amount)
        return True

    def withdraw(
        self,
        educator_id: str,
        amount: Decimal | int | float | str,
    ) -> WithdrawalReceipt:
        """
        Same as process_withdrawal, returning the record and remaining balance.

        The receipt comes from the withdrawal's own transaction; nothing is
        read after the commit.
        """
        value = normalize_withdrawal_amount(amount)

        with in_phase(None, "withdrawal"), self.ledger.unit_of_work() as uow:
            lines = uow.list_finalized_earnings(educator_id)
            try:
                plan = plan_fifo_withdrawal(lines, value)
            except InsufficientBalanceError:
                logger.warning("Rejected withdrawal of %s for educator %s", value, educator_id)
                raise

            allocations = []
            for line, deduct in plan:
                earning = line.earning
                uow.save_earning(
                    earning.model_copy(
                        update={
                            "withdrawn": earning.withdrawn + deduct,
                            "available_balance": earning.available_balance - deduct,
                        }
                    )
                )
                allocations.append(
                    WithdrawalAllocation(settlement_month=line.settlement.month, amount=deduct)
                )

            record = uow.record_withdrawal(
                WithdrawalRecord(
                    user_id=educator_id,
                    amount=value,
                    allocations=allocations,
                    created_at=self.clock.now_utc(),
                )
            )
            remaining = sum((line.earning.available_balance for line in lines), ZERO) - value
            uow.commit()

        logger.info(
            "Educator %s withdrew %s across %d months", educator_id, value, len(allocations)
        )
        return WithdrawalReceipt(record=record, finalized_balance=remaining)


# --- Configuration Loader ---


def load_config_from_rules(rules: Rules) -> SettlementConfig:
    return SettlementConfig(max_parallel_reads=rules.settlement.max_parallel_reads)


def create_settlement_engine(
    rules: Rules,
    subscriptions: SubscriptionReadPort,
    events: EngagementReadPort,
    ledger: SettlementLedgerPort,
    clock: TimePort,
) -> SettlementEngine:
    """Wire calculators and engine from rules and the given ports."""
    return SettlementEngine(
        revenue=RevenueCalculator(subscriptions, load_revenue_config(rules)),
        points=PointsCalculator(events, load_points_config(rules)),
        ledger=ledger,
        clock=clock,
        config=load_config_from_rules(rules),
    )
