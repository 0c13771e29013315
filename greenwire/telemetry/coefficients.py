"""Base cost coefficients and the cost model.

Costs are grams of CO2. An event's estimate is its kind's base coefficient
times a multiplier built from the context:

- ``duration_ms`` contributes ``duration_ms / 1000`` (seconds);
- ``size_bytes`` contributes ``size_bytes / 1024`` (kilobytes);
- ``complexity`` contributes itself.

Each factor applies only when its field is set. Energy is cost times
``ENERGY_JOULES_PER_GRAM``.
"""

from __future__ import annotations

import types
import typing as typ

from .models import OperationKind

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .models import TelemetryContext

DEFAULT_COEFFICIENT = 0.001
ENERGY_JOULES_PER_GRAM = 2.5

_MS_PER_SECOND = 1000.0
_BYTES_PER_KILOBYTE = 1024.0

DEFAULT_COEFFICIENTS: cabc.Mapping[str, float] = types.MappingProxyType(
    {
        # network
        OperationKind.API_REQUEST: 0.5,
        OperationKind.API_CACHE_HIT: 0.01,
        OperationKind.PAGE_LOAD: 2.0,
        OperationKind.ASSET_LOAD: 0.1,
        # interaction
        OperationKind.BUTTON_CLICK: 0.001,
        OperationKind.FORM_SUBMIT: 0.01,
        OperationKind.SCROLL: 0.0001,
        OperationKind.TYPING: 0.0001,
        # ai
        OperationKind.AI_CHAT: 5.0,
        OperationKind.AI_RESPONSE: 3.0,
        # data
        OperationKind.DATABASE_READ: 0.1,
        OperationKind.DATABASE_WRITE: 0.2,
        OperationKind.FILE_UPLOAD: 1.0,
        # rendering
        OperationKind.DOM_UPDATE: 0.001,
        OperationKind.ANIMATION: 0.01,
        OperationKind.CHART_RENDER: 0.1,
    }
)


class CoefficientTable:
    """Lookup of base coefficients with a fallback for unknown kinds.

    Parameters
    ----------
    overrides
        Coefficients replacing or extending the defaults.
    default
        Coefficient for kinds absent from the table.

    """

    def __init__(
        self,
        overrides: cabc.Mapping[str, float] | None = None,
        *,
        default: float = DEFAULT_COEFFICIENT,
    ) -> None:
        """Build the table from the defaults plus ``overrides``."""
        self._coefficients = {str(k): v for k, v in DEFAULT_COEFFICIENTS.items()}
        if overrides:
            self._coefficients.update({str(k): v for k, v in overrides.items()})
        self._default = default

    def base_for(self, kind: str) -> float:
        """Return the base coefficient for ``kind``."""
        return self._coefficients.get(str(kind), self._default)

    def estimate_cost(self, kind: str, context: TelemetryContext) -> float:
        """Return the cost estimate for one operation."""
        multiplier = 1.0
        if context.duration_ms is not None:
            multiplier *= context.duration_ms / _MS_PER_SECOND
        if context.size_bytes is not None:
            multiplier *= context.size_bytes / _BYTES_PER_KILOBYTE
        if context.complexity is not None:
            multiplier *= context.complexity
        return self.base_for(kind) * multiplier

    @staticmethod
    def energy_for(cost: float) -> float:
        """Convert a cost in grams to joules."""
        return cost * ENERGY_JOULES_PER_GRAM
