"""Budget classification of cumulative session cost."""

from __future__ import annotations

from .models import BudgetLevel, BudgetStatus

DEFAULT_BUDGET_GRAMS = 10.0
WARNING_PERCENT = 70.0
CRITICAL_PERCENT = 90.0
_MAX_PERCENT = 100.0


def classify_budget(used: float, budget: float = DEFAULT_BUDGET_GRAMS) -> BudgetStatus:
    """Measure ``used`` against ``budget``.

    The level is ``critical`` above 90 %, ``warning`` above 70 % and ``good``
    otherwise; the thresholds are exclusive. The reported percentage is
    clamped to 100 and ``remaining`` to zero, but the level is decided on the
    unclamped figure.

    Raises
    ------
    ValueError
        If ``budget`` is not positive.

    """
    if budget <= 0:
        msg = f"budget must be positive, got: {budget}"
        raise ValueError(msg)

    percentage = used / budget * 100.0
    if percentage > CRITICAL_PERCENT:
        level = BudgetLevel.CRITICAL
    elif percentage > WARNING_PERCENT:
        level = BudgetLevel.WARNING
    else:
        level = BudgetLevel.GOOD

    return BudgetStatus(
        budget=budget,
        used=used,
        remaining=max(0.0, budget - used),
        percentage=min(_MAX_PERCENT, percentage),
        status=level,
    )
