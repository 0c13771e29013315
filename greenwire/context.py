"""Assemble one request pipeline and its telemetry delivery stack.

``PipelineContext`` owns exactly one cache, interceptor chain, recorder,
batcher and collector transport per instance. Build several contexts for
isolated tests or tenants; nothing in greenwire is a process-wide singleton.

Usage
-----
>>> async with PipelineContext.from_env(credentials=session_store) as ctx:
...     profile = await ctx.pipeline.get("/users/me")
...     ctx.recorder.track("button_click", target="save")

Outside ``async with``, call :meth:`PipelineContext.start` inside the event
loop and :meth:`PipelineContext.install_shutdown_hook` to flush at exit.

"""

from __future__ import annotations

import atexit
import typing as typ

from greenwire.config import PipelineConfig
from greenwire.logging import configure_logging, get_logger, log_warning
from greenwire.pipeline.cache import ResponseCache
from greenwire.pipeline.service import PipelineDependencies, RequestPipeline
from greenwire.pipeline.transport import HttpxRequestTransport
from greenwire.telemetry.batcher import BatcherSettings, EventBatcher
from greenwire.telemetry.collector import HttpCollectorTransport
from greenwire.telemetry.models import OperationKind
from greenwire.telemetry.recorder import TelemetryRecorder

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import types

    from greenwire.pipeline.service import CredentialProvider
    from greenwire.pipeline.transport import RequestTransport
    from greenwire.telemetry.collector import CollectorTransport
    from greenwire.telemetry.models import BudgetStatus

logger = get_logger(__name__)


class PipelineContext:
    """Owner of the pipeline, cache, recorder, batcher and collector.

    Parameters
    ----------
    config
        Options for every component.
    credentials
        Optional credential accessor; enables the bearer-token interceptor
        and the auth-failure hook.
    transport
        Request transport; an owned ``HttpxRequestTransport`` when omitted.
    collector
        Collector transport; an owned ``HttpCollectorTransport`` posting to
        ``config.collector_url`` when omitted.
    client_context
        Static descriptive fields attached to every telemetry batch.

    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        credentials: CredentialProvider | None = None,
        transport: RequestTransport | None = None,
        collector: CollectorTransport | None = None,
        client_context: cabc.Mapping[str, str] | None = None,
    ) -> None:
        """Build every component from ``config``."""
        self._config = config
        self._owned_transport = (
            HttpxRequestTransport() if transport is None else None
        )
        self._owned_collector = (
            HttpCollectorTransport(
                config.collector_url,
                timeout_s=config.timeout_s,
                best_effort_timeout_s=config.best_effort_timeout_s,
            )
            if collector is None
            else None
        )

        self.cache = ResponseCache(
            config.cache_duration_ms, max_entries=config.cache_max_entries
        )
        self.batcher = EventBatcher(
            collector or typ.cast("CollectorTransport", self._owned_collector),
            settings=BatcherSettings(
                batch_size=config.batch_size,
                flush_interval_s=config.flush_interval_s,
                max_attempts=config.max_delivery_attempts,
            ),
            client_context=client_context,
        )
        self.recorder = TelemetryRecorder(
            self.batcher, enabled=config.tracking_enabled
        )
        self.pipeline = RequestPipeline(
            PipelineDependencies(
                transport=transport
                or typ.cast("RequestTransport", self._owned_transport),
                cache=self.cache,
                recorder=self.recorder,
                credentials=credentials,
            ),
            config=config,
        )
        self._session_ended = False
        self._hook_installed = False

    @classmethod
    def from_env(
        cls, *, credentials: CredentialProvider | None = None
    ) -> PipelineContext:
        """Load ``PipelineConfig`` from the environment and configure logging."""
        config = PipelineConfig.from_env()
        level, invalid = configure_logging(config.log_level)
        if invalid:
            log_warning(
                logger,
                "Invalid GREENWIRE_LOG_LEVEL %r; defaulting to %s",
                config.log_level,
                level,
            )
        return cls(config, credentials=credentials)

    @property
    def config(self) -> PipelineConfig:
        """Configuration shared by every component."""
        return self._config

    def budget_status(self) -> BudgetStatus:
        """Classify session cost against the configured budget."""
        return self.recorder.get_budget_status(self._config.budget_grams)

    def start(self) -> None:
        """Start the periodic telemetry flush on the running event loop."""
        self.batcher.start()

    def install_shutdown_hook(self) -> None:
        """Run :meth:`shutdown` at interpreter exit."""
        if self._hook_installed:
            return
        atexit.register(self.shutdown)
        self._hook_installed = True

    def _end_session(self) -> None:
        if self._session_ended:
            return
        self._session_ended = True
        metrics = self.recorder.get_session_metrics()
        self.recorder.track(
            OperationKind.PAGE_UNLOAD,
            session_duration_ms=metrics.session_duration_ms,
            total_events=metrics.total_events,
        )

    def shutdown(self) -> None:
        """Record the session end and flush queued telemetry best-effort.

        Synchronous and idempotent, so it is safe from an ``atexit`` hook.
        """
        self._end_session()
        self.batcher.shutdown()

    async def aclose(self) -> None:
        """End the session, drain the batcher and close owned HTTP clients."""
        self._end_session()
        await self.batcher.aclose()
        if self._owned_transport is not None:
            await self._owned_transport.aclose()
        if self._owned_collector is not None:
            await self._owned_collector.aclose()

    async def __aenter__(self) -> typ.Self:
        """Start the flush timer."""
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: types.TracebackType | None,
    ) -> None:
        """Close the context."""
        await self.aclose()
