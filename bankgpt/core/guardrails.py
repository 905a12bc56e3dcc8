"""
Budget guardrails for request shaping.

Budget exhaustion never rejects a chat request. Instead the request is
degraded to the cheaper default model and a shorter response.

Enforcement Order:
1. Monthly budget - exhausting it downgrades
2. Daily budget - exhausting it downgrades
3. Daily warning level - logs a warning but allows the request
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto

from .cost_tracker import CostTracker

logger = logging.getLogger(__name__)

DEFAULT_WARN_PERCENT = 90.0


class EnforcementAction(Enum):
    """Available enforcement actions in order of severity."""
    ALLOW = auto()      # Allow the request (no action)
    WARN = auto()       # Log warning but allow request
    DOWNGRADE = auto()  # Force the cheaper model and shorter responses


@dataclass(frozen=True)
class GenerationPlan:
    """Model and response length chosen for one request."""
    action: EnforcementAction
    model: str
    max_tokens: int
    reason: str = ""

    @property
    def degraded(self) -> bool:
        return self.action == EnforcementAction.DOWNGRADE


def plan_generation(
    tracker: CostTracker,
    requested_model: str,
    default_model: str,
    max_tokens: int,
    degraded_max_tokens: int,
    warn_percent: float = DEFAULT_WARN_PERCENT
) -> GenerationPlan:
    """Pick model and max tokens given the current spend.

    Args:
        tracker: Cost tracker holding running totals
        requested_model: Model the configuration asks for
        default_model: Cheaper model used when degrading
        max_tokens: Normal response token cap
        degraded_max_tokens: Response token cap when degrading
        warn_percent: Daily budget percentage that triggers a warning

    Returns:
        GenerationPlan with the most severe action triggered
    """
    action_taken = EnforcementAction.ALLOW
    message = ""

    def _update_action(new_action: EnforcementAction, new_message: str) -> None:
        nonlocal action_taken, message
        if new_action.value > action_taken.value:
            action_taken = new_action
            message = new_message

    percent = tracker.budget_used_percent

    # 1 + 2. Exhausted budgets degrade
    if tracker.is_budget_exhausted:
        _update_action(
            EnforcementAction.DOWNGRADE,
            f"Budget exhausted ({percent:.1f}% of daily ${tracker.daily_budget:.2f}, "
            f"monthly spend ${tracker.monthly_total:.4f})"
        )

    # 3. Approaching the daily budget
    if percent >= warn_percent:
        _update_action(
            EnforcementAction.WARN,
            f"Daily spend at {percent:.1f}% of ${tracker.daily_budget:.2f}"
        )

    if action_taken == EnforcementAction.DOWNGRADE:
        logger.warning("%s; using %s with max_tokens=%d", message, default_model, degraded_max_tokens)
        return GenerationPlan(
            action=action_taken,
            model=default_model,
            max_tokens=min(max_tokens, degraded_max_tokens),
            reason=message,
        )

    if action_taken == EnforcementAction.WARN:
        logger.warning(message)

    return GenerationPlan(
        action=action_taken,
        model=requested_model,
        max_tokens=max_tokens,
        reason=message,
    )
