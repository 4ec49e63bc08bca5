"""Daily/monthly spend tracking for paid generation actions"""

import asyncio
import logging
from datetime import date
from typing import Callable, Dict, NamedTuple, Optional

logger = logging.getLogger(__name__)


class BudgetDecision(NamedTuple):
    ok: bool
    reason: Optional[str] = None


class BudgetLedger:
    """
    Two independent spend counters (daily, monthly) checked against fixed caps.

    The daily counter resets lazily when the calendar day changes; the monthly
    counter only resets through reset_monthly(). can_afford() and record() are
    separate calls, so callers hold `lock` across check-then-record.
    """

    def __init__(
        self,
        daily_cap: float = 5.0,
        monthly_cap: float = 50.0,
        today: Callable[[], date] = date.today,
    ):
        if daily_cap <= 0 or monthly_cap <= 0:
            raise ValueError("budget caps must be positive")
        self.daily_cap = float(daily_cap)
        self.monthly_cap = float(monthly_cap)
        self._today = today
        self.daily_used: float = 0.0
        self.monthly_used: float = 0.0
        self.last_reset_date: date = today()
        self.lock = asyncio.Lock()

    def reset_daily_if_rolled_over(self) -> bool:
        """Zero the daily counter if the calendar day changed since the last reset."""
        current = self._today()
        if current == self.last_reset_date:
            return False
        logger.info(f"Day rolled over ({self.last_reset_date} -> {current}); daily spend reset from ${self.daily_used:.2f}")
        self.daily_used = 0.0
        self.last_reset_date = current
        return True

    def can_afford(self, cost: float) -> BudgetDecision:
        self.reset_daily_if_rolled_over()

        if self.daily_used + cost > self.daily_cap:
            return BudgetDecision(
                False,
                f"Daily budget limit reached (${self.daily_cap:.2f}). Used: ${self.daily_used:.2f}",
            )
        if self.monthly_used + cost > self.monthly_cap:
            return BudgetDecision(
                False,
                f"Monthly budget limit reached (${self.monthly_cap:.2f}). Used: ${self.monthly_used:.2f}",
            )
        return BudgetDecision(True)

    def record(self, cost: float) -> None:
        """Add cost to both counters. Only valid right after a successful can_afford(cost)."""
        self.daily_used += cost
        self.monthly_used += cost
        logger.info(
            f"Generation cost: ${cost:.2f}. Daily: ${self.daily_used:.2f}, Monthly: ${self.monthly_used:.2f}"
        )

    def reset_monthly(self) -> None:
        self.monthly_used = 0.0
        logger.info("Monthly generation budget reset")

    def remaining_daily(self) -> float:
        return self.status()["daily"]["remaining"]

    def status(self) -> Dict[str, Dict[str, float]]:
        self.reset_daily_if_rolled_over()
        return {
            "daily": _counter(self.daily_used, self.daily_cap),
            "monthly": _counter(self.monthly_used, self.monthly_cap),
        }


def _counter(used: float, limit: float) -> Dict[str, float]:
    return {
        "used": used,
        "limit": limit,
        "remaining": limit - used,
        "percentage": (used / limit) * 100,
    }
