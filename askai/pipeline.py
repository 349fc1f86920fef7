"""
ASKAI Generation Pipeline — the brainstem.

It is NOT smart. It is deterministic:

  cache lookup ─hit──────────────────────────────▶ classify ─▶ return
       │
      miss ─▶ history context ─▶ provider ─▶ classify ─▶ history ─▶ cache ─▶ return

Provider failures propagate unchanged. There is no retry and no switching
to another provider. A hard-blocked command is never returned, cached or
recorded.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from askai.cache import DiskResponseCache, ResponseCache
from askai.config_loader import AskAIConfig
from askai.context import environment_context
from askai.errors import AskAIError, CommandBlocked
from askai.event_bus import EventBus, bus as default_bus
from askai.history import HistoryRecord, HistoryStore, format_context
from askai.providers.registry import ProviderPool
from askai.safety import RiskLevel, assess


@dataclass(frozen=True)
class GenerationResult:
    command: str
    risk_level: RiskLevel
    cache_hit: bool
    provider: str
    reason: str = ""


class GenerationPipeline:
    """
    Orchestrates Context Retriever → Provider Gateway → Risk Classifier →
    History Store, with the Response Cache consulted first.

    Thread-safe: the cache and history guard their own maps, and no lock is
    held while a provider is running.
    """

    def __init__(
        self,
        config: AskAIConfig,
        providers: ProviderPool,
        cache: ResponseCache | None = None,
        history: HistoryStore | None = None,
        bus: EventBus | None = None,
    ):
        self.config = config
        self.providers = providers
        self.cache = cache
        self.history = history
        self.bus = bus or default_bus

    @classmethod
    def from_config(cls, config: AskAIConfig, bus: EventBus | None = None) -> "GenerationPipeline":
        """Direct-mode pipeline backed by the on-disk cache and history."""
        cache = None
        if config.cache.enabled:
            cache = DiskResponseCache(
                config.cache_path,
                ttl_seconds=config.cache.ttl_seconds,
                max_entries=config.cache.max_entries,
            )
        history = None
        if config.history.enabled:
            history = HistoryStore(config.history_path, max_entries=config.history.max_entries)
        return cls(config, ProviderPool(config), cache=cache, history=history, bus=bus)

    def generate(
        self,
        prompt: str,
        provider: str | None = None,
        use_cache: bool = True,
        extra_context: str = "",
        cwd: Path | str | None = None,
    ) -> GenerationResult:
        """Turn a natural-language prompt into a classified command.

        Args:
            prompt (str): Natural-language request.
            provider (str | None, optional): Provider id. Defaults to the configured default.
            use_cache (bool, optional): Consult and fill the response cache. Defaults to True.
            extra_context (str, optional): Additional context lines (e.g. project details).
            cwd (Path | str | None, optional): Directory the command will run in.

        Returns:
            GenerationResult: The command, its risk level and whether it came from cache.

        Raises:
            ProviderUnavailable: The selected generator is not installed/configured.
            GenerationFailed: The generator produced no usable command.
            CommandBlocked: The command matched the hard deny-list.
        """
        prompt = prompt.strip()
        gateway = self.providers.get(provider)
        name = gateway.name
        start = time.monotonic()
        self.bus.emit("generation.started", "pipeline", {"prompt": prompt, "provider": name})

        # ── 1. Cache ──
        if use_cache and self.cache is not None:
            cached = self.cache.get(prompt, name)
            if cached is not None:
                assessment = self._classify(cached)
                logger.debug(f"[PIPELINE] Cache hit for {name}: {cached}")
                self.bus.emit("generation.cache_hit", "pipeline", {"prompt": prompt, "provider": name})
                return self._finish(prompt, cached, assessment, True, name, start)

        # ── 2. Context ──
        context_parts = [environment_context(cwd)]
        if extra_context:
            context_parts.append(extra_context.strip())
        if self.history is not None and self.config.history.context_size > 0:
            relevant = self.history.retrieve_context(prompt, self.config.history.context_size)
            if relevant:
                context_parts.append(format_context(relevant))
        context = "\n\n".join(context_parts)

        # ── 3. Provider ──
        try:
            command = gateway.generate(prompt, context)
        except AskAIError as e:
            self.bus.emit("generation.failed", "pipeline", {"provider": name, "error": e.kind, "message": str(e)})
            raise

        # ── 4. Classify ──
        assessment = self._classify(command)

        # ── 5. Record ──
        if self.history is not None:
            self.history.append(HistoryRecord(prompt=prompt, command=command, provider=name))
        if use_cache and self.cache is not None:
            self.cache.put(prompt, name, command)

        return self._finish(prompt, command, assessment, False, name, start)

    # ------------------------------------------------------------------

    def _classify(self, command: str):
        assessment = assess(command, self.config.blocked_patterns)
        if assessment.blocked:
            logger.warning(f"[PIPELINE] Blocked command withheld ({assessment.reason})")
            self.bus.emit("generation.failed", "pipeline", {"error": CommandBlocked.kind, "message": assessment.reason})
            raise CommandBlocked(
                f"Refusing dangerous command ({assessment.reason})",
                command=command,
                reason=assessment.reason,
            )
        return assessment

    def _finish(self, prompt, command, assessment, cache_hit, provider, start) -> GenerationResult:
        elapsed_ms = int((time.monotonic() - start) * 1000)
        self.bus.emit(
            "generation.completed",
            "pipeline",
            {
                "prompt": prompt,
                "provider": provider,
                "risk_level": assessment.level.value,
                "cache_hit": cache_hit,
                "elapsed_ms": elapsed_ms,
            },
        )
        return GenerationResult(
            command=command,
            risk_level=assessment.level,
            cache_hit=cache_hit,
            provider=provider,
            reason=assessment.reason,
        )
