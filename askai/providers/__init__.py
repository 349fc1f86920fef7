"""
ASKAI Provider Gateway

Each provider is:
  - A name, selected at invocation time
  - An availability probe, memoized per process
  - A generate(prompt, context) call returning one command line

Providers are stateless between calls and never retry. Failures surface
as ProviderUnavailable or GenerationFailed.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod

from loguru import logger

from askai.errors import ProviderUnavailable
from askai.providers.prompts import build_command_prompt
from askai.providers.response import extract_command

_AVAILABILITY: dict[str, bool] = {}
_AVAILABILITY_LOCK = threading.Lock()


def reset_availability_cache() -> None:
    with _AVAILABILITY_LOCK:
        _AVAILABILITY.clear()


class BaseProvider(ABC):
    """
    Base class for all ASKAI providers.

    Subclasses define:
      - name: str — the id users select with --provider
      - install_hint: str — remediation shown when unavailable
      - probe() — the (possibly expensive) availability check
      - invoke() — sends the full prompt, returns raw generator output
    """

    name: str = "unknown"
    install_hint: str = ""
    extra_rules: str | None = None

    def __init__(self, timeout: float = 60.0):
        self.timeout = timeout

    def is_available(self) -> bool:
        """Probe once per process and remember the answer."""
        with _AVAILABILITY_LOCK:
            cached = _AVAILABILITY.get(self.name)
        if cached is not None:
            return cached

        available = self.probe()
        with _AVAILABILITY_LOCK:
            _AVAILABILITY.setdefault(self.name, available)
        logger.debug(f"[PROVIDER] {self.name} available={available}")
        return available

    def generate(self, prompt: str, context: str = "") -> str:
        """Generate a single shell command: check → build prompt → invoke → extract."""
        if not self.is_available():
            raise ProviderUnavailable(
                f"Provider '{self.name}' is not available.\n{self.install_hint}".strip(),
                provider=self.name,
                remediation=self.install_hint,
            )
        raw = self.invoke(self.build_prompt(prompt, context))
        return extract_command(raw)

    def build_prompt(self, prompt: str, context: str) -> str:
        return build_command_prompt(prompt, context, self.extra_rules)

    @abstractmethod
    def probe(self) -> bool:
        """Return True when the backing generator can be called."""
        ...

    @abstractmethod
    def invoke(self, full_prompt: str) -> str:
        """Call the generator and return its raw text output."""
        ...
