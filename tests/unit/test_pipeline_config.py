"""Unit tests for PipelineConfig defaults and environment loading."""

from __future__ import annotations

import pytest

from greenwire.config import PipelineConfig, PipelineConfigError

_ENV_NAMES = (
    "BASE_URL",
    "TIMEOUT_MS",
    "CACHE_DURATION_MS",
    "CACHE_MAX_ENTRIES",
    "BATCH_SIZE",
    "FLUSH_INTERVAL_MS",
    "COLLECTOR_ENDPOINT",
    "TRACKING_ENABLED",
    "MAX_DELIVERY_ATTEMPTS",
    "BEST_EFFORT_TIMEOUT_MS",
    "BUDGET_GRAMS",
    "LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove every GREENWIRE_* variable for the duration of a test."""
    for name in _ENV_NAMES:
        monkeypatch.delenv(f"GREENWIRE_{name}", raising=False)
    return monkeypatch


class TestPipelineConfigDefaults:
    """Defaults and derived values."""

    def test_defaults_match_client_behaviour(self) -> None:
        """The default configuration mirrors the documented defaults."""
        config = PipelineConfig()

        assert config.timeout_s == 10.0, "Expected a 10 s transport deadline."
        assert config.cache_duration_ms == 300_000, "Expected a 5 minute cache."
        assert config.batch_size == 10, "Expected batches of 10 events."
        assert config.flush_interval_s == 30.0, "Expected a 30 s flush interval."
        assert config.budget_grams == 10.0, "Expected a 10 g budget."
        assert config.cache_max_entries is None, "Expected an unbounded cache."

    @pytest.mark.parametrize(
        ("base_url", "url", "expected"),
        [
            ("https://api.test", "/users", "https://api.test/users"),
            ("https://api.test/", "users", "https://api.test/users"),
            ("https://api.test", "http://other.test/x", "http://other.test/x"),
            ("https://api.test", "https://other.test/y", "https://other.test/y"),
        ],
    )
    def test_resolve_url(self, base_url: str, url: str, expected: str) -> None:
        """Relative URLs join the base URL; absolute URLs pass through."""
        config = PipelineConfig(base_url=base_url)
        assert config.resolve_url(url) == expected, f"Unexpected URL for {url!r}."

    def test_collector_url_resolves_relative_endpoint(self) -> None:
        """The collector endpoint is resolved against the base URL."""
        config = PipelineConfig(base_url="https://api.test")
        assert config.collector_url == "https://api.test/api/carbon-tracking", (
            "Expected the default collector path under the base URL."
        )


class TestPipelineConfigFromEnv:
    """Environment loading and validation."""

    def test_requires_base_url(self, clean_env: pytest.MonkeyPatch) -> None:
        """A missing base URL is a configuration error."""
        with pytest.raises(PipelineConfigError, match="GREENWIRE_BASE_URL"):
            PipelineConfig.from_env()

    def test_reads_every_option(self, clean_env: pytest.MonkeyPatch) -> None:
        """Every recognised variable is parsed into its field."""
        values = {
            "BASE_URL": "https://api.test",
            "TIMEOUT_MS": "2500",
            "CACHE_DURATION_MS": "1000",
            "CACHE_MAX_ENTRIES": "64",
            "BATCH_SIZE": "25",
            "FLUSH_INTERVAL_MS": "5000",
            "COLLECTOR_ENDPOINT": "https://collector.test/ingest",
            "TRACKING_ENABLED": "off",
            "MAX_DELIVERY_ATTEMPTS": "3",
            "BEST_EFFORT_TIMEOUT_MS": "500",
            "BUDGET_GRAMS": "2.5",
            "LOG_LEVEL": "debug",
        }
        for name, value in values.items():
            clean_env.setenv(f"GREENWIRE_{name}", value)

        config = PipelineConfig.from_env()

        assert config == PipelineConfig(
            base_url="https://api.test",
            timeout_ms=2500,
            cache_duration_ms=1000,
            cache_max_entries=64,
            batch_size=25,
            flush_interval_ms=5000,
            collector_endpoint="https://collector.test/ingest",
            tracking_enabled=False,
            max_delivery_attempts=3,
            best_effort_timeout_ms=500,
            budget_grams=2.5,
            log_level="debug",
        ), "Expected every variable to be applied."

    @pytest.mark.parametrize(
        ("name", "raw"),
        [
            ("TIMEOUT_MS", "soon"),
            ("BATCH_SIZE", "0"),
            ("CACHE_MAX_ENTRIES", "-1"),
            ("BUDGET_GRAMS", "lots"),
            ("BUDGET_GRAMS", "0"),
            ("TRACKING_ENABLED", "maybe"),
            ("MAX_DELIVERY_ATTEMPTS", "0"),
        ],
    )
    def test_rejects_invalid_values(
        self, clean_env: pytest.MonkeyPatch, name: str, raw: str
    ) -> None:
        """Invalid values raise PipelineConfigError naming the variable."""
        clean_env.setenv("GREENWIRE_BASE_URL", "https://api.test")
        clean_env.setenv(f"GREENWIRE_{name}", raw)

        with pytest.raises(PipelineConfigError, match=f"GREENWIRE_{name}"):
            PipelineConfig.from_env()

    def test_blank_values_fall_back_to_defaults(
        self, clean_env: pytest.MonkeyPatch
    ) -> None:
        """Whitespace-only values are treated as unset."""
        clean_env.setenv("GREENWIRE_BASE_URL", "https://api.test")
        clean_env.setenv("GREENWIRE_BATCH_SIZE", "   ")

        assert PipelineConfig.from_env().batch_size == 10, (
            "Expected the default batch size for a blank value."
        )

    @pytest.mark.parametrize("raw", ["unlimited", "None"])
    def test_delivery_attempts_can_be_unlimited(
        self, clean_env: pytest.MonkeyPatch, raw: str
    ) -> None:
        """MAX_DELIVERY_ATTEMPTS accepts an explicit retry-forever value."""
        clean_env.setenv("GREENWIRE_BASE_URL", "https://api.test")
        clean_env.setenv("GREENWIRE_MAX_DELIVERY_ATTEMPTS", raw)

        assert PipelineConfig.from_env().max_delivery_attempts is None, (
            "Expected unlimited delivery attempts."
        )
