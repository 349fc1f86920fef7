"""
Provider selection and instance pooling.

The set of providers is closed: adding one means adding a variant here.
"""

from __future__ import annotations

import threading
from typing import Callable

from loguru import logger

from askai.config_loader import AskAIConfig
from askai.errors import UnknownProvider
from askai.providers import BaseProvider
from askai.providers.api import LiteLLMProvider
from askai.providers.cli import ClaudeProvider, CodexProvider, GeminiProvider

SUPPORTED_PROVIDERS = ("gemini", "claude", "codex", "litellm")


def is_supported(name: str) -> bool:
    return name.strip().lower() in SUPPORTED_PROVIDERS


def create_provider(name: str, config: AskAIConfig) -> BaseProvider:
    """Construct the provider variant for `name` (case-insensitive).

    Raises:
        UnknownProvider: If `name` is not one of SUPPORTED_PROVIDERS.
    """
    key = name.strip().lower()
    timeout = config.providers.timeout_seconds
    if key == "gemini":
        return GeminiProvider(timeout=timeout)
    if key == "claude":
        return ClaudeProvider(timeout=timeout)
    if key == "codex":
        return CodexProvider(timeout=timeout)
    if key == "litellm":
        return LiteLLMProvider(model=config.providers.litellm_model, timeout=timeout)
    raise UnknownProvider(
        f"Unknown provider: {name}. Supported: {', '.join(SUPPORTED_PROVIDERS)}"
    )


ProviderFactory = Callable[[str, AskAIConfig], BaseProvider]


class ProviderPool:
    """
    Lazily constructed provider instances, shared across threads.

    The daemon keeps one pool for its whole lifetime, so each provider is
    built and probed once.
    """

    def __init__(self, config: AskAIConfig, factory: ProviderFactory = create_provider):
        self.config = config
        self._factory = factory
        self._providers: dict[str, BaseProvider] = {}
        self._lock = threading.Lock()

    def get(self, name: str | None = None) -> BaseProvider:
        key = (name or self.config.default_provider).strip().lower()
        with self._lock:
            provider = self._providers.get(key)
            if provider is None:
                provider = self._factory(key, self.config)
                self._providers[key] = provider
                logger.debug(f"[PROVIDER] Loaded {key}")
        return provider

    def preload(self, names: list[str]) -> dict[str, bool]:
        """Construct and probe providers ahead of time. Returns availability per name."""
        report: dict[str, bool] = {}
        for name in names:
            try:
                report[name] = self.get(name).is_available()
            except UnknownProvider as e:
                logger.warning(f"[PROVIDER] Skipping preload: {e}")
        return report

    def loaded(self) -> list[str]:
        with self._lock:
            return sorted(self._providers)
