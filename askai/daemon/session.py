"""Long-lived state owned by a running daemon."""

from __future__ import annotations

import time

from loguru import logger

from askai.cache import COMMON_PROMPTS, ResponseCache
from askai.config_loader import AskAIConfig
from askai.event_bus import EventBus
from askai.history import HistoryStore
from askai.pipeline import GenerationPipeline
from askai.providers.registry import ProviderFactory, ProviderPool, create_provider


class DaemonSession:
    """
    Memory cache, provider pool and history shared by every request the
    daemon serves. The history file stays the source of truth so direct-mode
    invocations and the daemon see the same records.
    """

    def __init__(
        self,
        config: AskAIConfig,
        factory: ProviderFactory = create_provider,
        bus: EventBus | None = None,
    ):
        self.config = config
        self.start_time = time.monotonic()
        self.cache = ResponseCache(
            ttl_seconds=config.cache.ttl_seconds,
            max_entries=config.cache.max_entries,
        )
        self.history = (
            HistoryStore(config.history_path, max_entries=config.history.max_entries)
            if config.history.enabled
            else None
        )
        self.providers = ProviderPool(config, factory=factory)
        self.pipeline = GenerationPipeline(
            config,
            self.providers,
            cache=self.cache if config.cache.enabled else None,
            history=self.history,
            bus=bus,
        )

    def warm(self) -> dict[str, bool]:
        """Pre-warm the memory cache and preload the configured providers.

        Uptime counts from here, the moment the daemon starts serving.
        """
        self.start_time = time.monotonic()
        names = list(dict.fromkeys([self.config.default_provider, *self.config.providers.daemon_preload]))
        pairs = list(COMMON_PROMPTS) + [(p.prompt, p.command) for p in self.config.cache.prewarm]
        inserted = self.cache.prewarm(names, pairs)
        report = self.providers.preload(names)
        logger.info(f"[DAEMON] Pre-warmed {inserted} cache entries; providers {report}")
        return report

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.start_time

    def loaded_providers(self) -> list[str]:
        return self.providers.loaded()
