"""Configuration for the request pipeline and telemetry batcher.

``PipelineConfig`` enumerates every recognised option. Unknown options do not
exist: adding one means adding a field here.

Usage
-----
Build a configuration directly:

>>> config = PipelineConfig(base_url="https://api.example.test")
>>> config.timeout_s
10.0

Or load it from the environment:

>>> import os
>>> os.environ["GREENWIRE_BASE_URL"] = "https://api.example.test"
>>> os.environ["GREENWIRE_BATCH_SIZE"] = "25"
>>> PipelineConfig.from_env().batch_size
25

"""

from __future__ import annotations

import dataclasses as dc
import os

_ENV_PREFIX = "GREENWIRE_"

_DEFAULT_TIMEOUT_MS = 10_000
_DEFAULT_CACHE_DURATION_MS = 300_000
_DEFAULT_BATCH_SIZE = 10
_DEFAULT_FLUSH_INTERVAL_MS = 30_000
_DEFAULT_COLLECTOR_ENDPOINT = "/api/carbon-tracking"
_DEFAULT_MAX_DELIVERY_ATTEMPTS = 5
_DEFAULT_BEST_EFFORT_TIMEOUT_MS = 2_000
_DEFAULT_BUDGET_GRAMS = 10.0
_DEFAULT_LOG_LEVEL = "INFO"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})
_UNLIMITED_VALUES = frozenset({"none", "unlimited"})


class PipelineConfigError(ValueError):
    """Raised when pipeline configuration is missing or invalid."""

    @classmethod
    def missing_base_url(cls) -> PipelineConfigError:
        """Return an error for an absent ``GREENWIRE_BASE_URL``."""
        return cls(f"{_ENV_PREFIX}BASE_URL environment variable is required")

    @classmethod
    def invalid_integer(cls, name: str, raw: str) -> PipelineConfigError:
        """Return an error for a value that is not a positive integer."""
        return cls(f"{name} must be a positive integer, got: {raw!r}")

    @classmethod
    def invalid_number(cls, name: str, raw: str) -> PipelineConfigError:
        """Return an error for a value that is not a positive number."""
        return cls(f"{name} must be a positive number, got: {raw!r}")

    @classmethod
    def invalid_boolean(cls, name: str, raw: str) -> PipelineConfigError:
        """Return an error for an unrecognised boolean flag."""
        accepted = ", ".join(sorted(_TRUE_VALUES | _FALSE_VALUES))
        return cls(f"{name} must be one of {accepted}, got: {raw!r}")


@dc.dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Closed set of options for a pipeline context.

    Attributes
    ----------
    base_url
        Prefix for relative request URLs.
    timeout_ms
        Deadline for a single transport call; on expiry the call is cancelled
        and classified as a timeout.
    cache_duration_ms
        Lifetime of cached GET responses.
    cache_max_entries
        Upper bound on cached responses, evicting least recently used first.
        ``None`` leaves the cache bounded only by TTL.
    batch_size
        Queue length that triggers an immediate telemetry flush.
    flush_interval_ms
        Period of the background telemetry flush.
    collector_endpoint
        Collector URL. Relative paths are resolved against ``base_url``.
    tracking_enabled
        When false, telemetry recording is a no-op.
    max_delivery_attempts
        Failed deliveries an event survives before it is dropped and counted.
        ``None`` retries forever.
    best_effort_timeout_ms
        Deadline for the blocking shutdown delivery.
    budget_grams
        Allowance used by budget status reporting.
    log_level
        Level passed to ``configure_logging`` by ``PipelineContext.from_env``.

    """

    base_url: str = ""
    timeout_ms: int = _DEFAULT_TIMEOUT_MS
    cache_duration_ms: int = _DEFAULT_CACHE_DURATION_MS
    cache_max_entries: int | None = None
    batch_size: int = _DEFAULT_BATCH_SIZE
    flush_interval_ms: int = _DEFAULT_FLUSH_INTERVAL_MS
    collector_endpoint: str = _DEFAULT_COLLECTOR_ENDPOINT
    tracking_enabled: bool = True
    max_delivery_attempts: int | None = _DEFAULT_MAX_DELIVERY_ATTEMPTS
    best_effort_timeout_ms: int = _DEFAULT_BEST_EFFORT_TIMEOUT_MS
    budget_grams: float = _DEFAULT_BUDGET_GRAMS
    log_level: str = _DEFAULT_LOG_LEVEL

    @property
    def timeout_s(self) -> float:
        """Transport deadline in seconds."""
        return self.timeout_ms / 1000.0

    @property
    def flush_interval_s(self) -> float:
        """Flush period in seconds."""
        return self.flush_interval_ms / 1000.0

    @property
    def best_effort_timeout_s(self) -> float:
        """Shutdown delivery deadline in seconds."""
        return self.best_effort_timeout_ms / 1000.0

    def resolve_url(self, url: str) -> str:
        """Return ``url`` unchanged when absolute, else prefixed by base_url."""
        if url.startswith(("http://", "https://")):
            return url
        return f"{self.base_url.rstrip('/')}/{url.lstrip('/')}"

    @property
    def collector_url(self) -> str:
        """Absolute collector URL."""
        return self.resolve_url(self.collector_endpoint)

    @staticmethod
    def _read(name: str) -> str | None:
        raw = os.environ.get(f"{_ENV_PREFIX}{name}")
        if raw is None or not raw.strip():
            return None
        return raw.strip()

    @classmethod
    def _positive_int(cls, name: str, default: int) -> int:
        raw = cls._read(name)
        if raw is None:
            return default
        try:
            value = int(raw)
        except ValueError as exc:
            raise PipelineConfigError.invalid_integer(_ENV_PREFIX + name, raw) from exc
        if value < 1:
            raise PipelineConfigError.invalid_integer(_ENV_PREFIX + name, raw)
        return value

    @classmethod
    def _optional_positive_int(cls, name: str) -> int | None:
        if cls._read(name) is None:
            return None
        return cls._positive_int(name, 0)

    @classmethod
    def _attempt_limit(cls, name: str) -> int | None:
        raw = cls._read(name)
        if raw is not None and raw.lower() in _UNLIMITED_VALUES:
            return None
        return cls._positive_int(name, _DEFAULT_MAX_DELIVERY_ATTEMPTS)

    @classmethod
    def _positive_float(cls, name: str, default: float) -> float:
        raw = cls._read(name)
        if raw is None:
            return default
        try:
            value = float(raw)
        except ValueError as exc:
            raise PipelineConfigError.invalid_number(_ENV_PREFIX + name, raw) from exc
        if value <= 0:
            raise PipelineConfigError.invalid_number(_ENV_PREFIX + name, raw)
        return value

    @classmethod
    def _boolean(cls, name: str, *, default: bool) -> bool:
        raw = cls._read(name)
        if raw is None:
            return default
        lowered = raw.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise PipelineConfigError.invalid_boolean(_ENV_PREFIX + name, raw)

    @classmethod
    def from_env(cls) -> PipelineConfig:
        """Build configuration from ``GREENWIRE_*`` environment variables.

        Reads ``BASE_URL`` (required), ``TIMEOUT_MS``, ``CACHE_DURATION_MS``,
        ``CACHE_MAX_ENTRIES``, ``BATCH_SIZE``, ``FLUSH_INTERVAL_MS``,
        ``COLLECTOR_ENDPOINT``, ``TRACKING_ENABLED``,
        ``MAX_DELIVERY_ATTEMPTS``, ``BEST_EFFORT_TIMEOUT_MS``,
        ``BUDGET_GRAMS`` and ``LOG_LEVEL``, each with the prefix.
        ``MAX_DELIVERY_ATTEMPTS`` also accepts ``none`` or ``unlimited``.

        Raises
        ------
        PipelineConfigError
            If ``BASE_URL`` is unset or any value fails validation.

        """
        base_url = cls._read("BASE_URL")
        if base_url is None:
            raise PipelineConfigError.missing_base_url()

        return cls(
            base_url=base_url,
            timeout_ms=cls._positive_int("TIMEOUT_MS", _DEFAULT_TIMEOUT_MS),
            cache_duration_ms=cls._positive_int(
                "CACHE_DURATION_MS", _DEFAULT_CACHE_DURATION_MS
            ),
            cache_max_entries=cls._optional_positive_int("CACHE_MAX_ENTRIES"),
            batch_size=cls._positive_int("BATCH_SIZE", _DEFAULT_BATCH_SIZE),
            flush_interval_ms=cls._positive_int(
                "FLUSH_INTERVAL_MS", _DEFAULT_FLUSH_INTERVAL_MS
            ),
            collector_endpoint=cls._read("COLLECTOR_ENDPOINT")
            or _DEFAULT_COLLECTOR_ENDPOINT,
            tracking_enabled=cls._boolean("TRACKING_ENABLED", default=True),
            max_delivery_attempts=cls._attempt_limit("MAX_DELIVERY_ATTEMPTS"),
            best_effort_timeout_ms=cls._positive_int(
                "BEST_EFFORT_TIMEOUT_MS", _DEFAULT_BEST_EFFORT_TIMEOUT_MS
            ),
            budget_grams=cls._positive_float("BUDGET_GRAMS", _DEFAULT_BUDGET_GRAMS),
            log_level=cls._read("LOG_LEVEL") or _DEFAULT_LOG_LEVEL,
        )
