"""
Running cost totals and budget alerts.

Daily totals are keyed to the local calendar day of the injected clock
(datetime.now by default). The day stamp is compared on every record
call, so no timer is needed to reset them.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, List, Optional, Sequence, Set, Tuple

from .pricing import PRICING_TABLE, PricingTable, calculate_cost_decimal
from .token_counter import TokenUsage
from bankgpt.storage.models import UsageRecord

logger = logging.getLogger(__name__)

DEFAULT_ALERT_THRESHOLDS: Tuple[int, ...] = (50, 75, 90, 100)


@dataclass(frozen=True)
class BudgetAlert:
    """A daily budget threshold was crossed."""
    threshold_percent: int
    daily_total: float
    daily_budget: float
    day: date

    @property
    def message(self) -> str:
        return (
            f"Daily spend ${self.daily_total:.4f} reached {self.threshold_percent}% "
            f"of the ${self.daily_budget:.2f} budget on {self.day.isoformat()}"
        )


class CostTracker:
    """Accumulates request costs into daily and monthly totals.

    Each alert threshold fires at most once per calendar day, in
    ascending order. Falling back below a threshold does not re-arm it.
    `alerts` holds the alerts fired on the current day only.
    """

    def __init__(
        self,
        daily_budget: float,
        monthly_budget: Optional[float] = None,
        thresholds: Sequence[int] = DEFAULT_ALERT_THRESHOLDS,
        pricing: PricingTable = PRICING_TABLE,
        clock: Callable[[], datetime] = datetime.now,
        on_alert: Optional[Callable[[BudgetAlert], None]] = None,
        daily_spent: float = 0.0,
        monthly_spent: float = 0.0
    ):
        """Create a tracker.

        daily_spent and monthly_spent carry spend already recorded in the
        ledger for the current day and month. Thresholds they already
        cross are treated as fired and will not alert again today.
        """
        if daily_budget <= 0:
            raise ValueError("daily_budget must be > 0")
        if monthly_budget is not None and monthly_budget <= 0:
            raise ValueError("monthly_budget must be > 0")
        if any(t <= 0 for t in thresholds):
            raise ValueError("alert thresholds must be > 0")
        if daily_spent < 0 or monthly_spent < 0:
            raise ValueError("spent totals must be >= 0")

        self.daily_budget = daily_budget
        self.monthly_budget = monthly_budget
        self.thresholds = tuple(sorted(set(thresholds)))
        self.pricing = pricing
        self._clock = clock
        self._on_alert = on_alert
        self._lock = threading.Lock()

        today = clock().date()
        self._day = today
        self._month = (today.year, today.month)
        self._daily_total = Decimal(str(daily_spent))
        self._monthly_total = Decimal(str(monthly_spent))
        self._fired: Set[int] = {t for t in self.thresholds if self._percent_used() >= t}
        self.alerts: List[BudgetAlert] = []

    def cost_of(self, usage: TokenUsage, model: str) -> Decimal:
        """Price a usage without recording it."""
        return calculate_cost_decimal(model, usage, self.pricing)

    def record(
        self,
        usage: TokenUsage,
        model: str,
        conversation_id: Optional[str] = None,
        request_id: Optional[str] = None
    ) -> UsageRecord:
        """Add one request's usage to the running totals.

        Args:
            usage: Exact token usage of the request
            model: Model that served the request
            conversation_id: Optional conversation for the ledger
            request_id: Optional upstream request id for the ledger

        Returns:
            The immutable UsageRecord for the request

        Raises:
            ValueError: If model is not in the pricing table
        """
        cost = self.cost_of(usage, model)

        with self._lock:
            now = self._clock()
            self._roll_over(now.date())
            self._daily_total += cost
            self._monthly_total += cost
            fired = self._check_thresholds()

        for alert in fired:
            logger.warning("Budget alert: %s", alert.message)
            if self._on_alert is not None:
                self._on_alert(alert)

        return UsageRecord(
            timestamp=now,
            model=model,
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
            cost=float(cost),
            conversation_id=conversation_id,
            request_id=request_id,
        )

    def _roll_over(self, today: date) -> None:
        if today != self._day:
            logger.info(
                "Resetting daily cost total for %s (previous day %s spent $%.4f)",
                today.isoformat(), self._day.isoformat(), self._daily_total
            )
            self._day = today
            self._daily_total = Decimal("0")
            self._fired = set()
            self.alerts = []
        month = (today.year, today.month)
        if month != self._month:
            self._month = month
            self._monthly_total = Decimal("0")

    def _check_thresholds(self) -> List[BudgetAlert]:
        fired = []
        percent = self._percent_used()
        for threshold in self.thresholds:
            if threshold in self._fired or percent < threshold:
                continue
            self._fired.add(threshold)
            alert = BudgetAlert(
                threshold_percent=threshold,
                daily_total=float(self._daily_total),
                daily_budget=self.daily_budget,
                day=self._day,
            )
            self.alerts.append(alert)
            fired.append(alert)
        return fired

    def _percent_used(self) -> float:
        return float(self._daily_total) / self.daily_budget * 100

    def _current(self) -> None:
        # Totals read after midnight must not report yesterday's spend
        with self._lock:
            self._roll_over(self._clock().date())

    @property
    def daily_total(self) -> float:
        self._current()
        return float(self._daily_total)

    @property
    def monthly_total(self) -> float:
        self._current()
        return float(self._monthly_total)

    @property
    def budget_used_percent(self) -> float:
        self._current()
        return self._percent_used()

    @property
    def is_budget_exhausted(self) -> bool:
        """True once the daily budget is fully spent, or the monthly one."""
        self._current()
        if self._percent_used() >= 100:
            return True
        return (self.monthly_budget is not None
                and float(self._monthly_total) >= self.monthly_budget)
