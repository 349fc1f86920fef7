"""
API-backed provider routed through LiteLLM, so any vendor model string
(`gemini/...`, `anthropic/...`, `openai/...`) can stand in for a CLI.
"""

from __future__ import annotations

import os
import time
from typing import Any

import litellm
from loguru import logger

from askai.errors import GenerationFailed
from askai.providers import BaseProvider

# Model prefix → env vars that can authenticate it
_KEY_ENV = {
    "anthropic": ("ANTHROPIC_API_KEY",),
    "claude": ("ANTHROPIC_API_KEY",),
    "openai": ("OPENAI_API_KEY",),
    "gpt": ("OPENAI_API_KEY",),
    "o1": ("OPENAI_API_KEY",),
    "o3": ("OPENAI_API_KEY",),
    "o4": ("OPENAI_API_KEY",),
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
}


# ---------------------------------------------------------------------------
# Model capability helpers
# ---------------------------------------------------------------------------

def _is_gpt5_model(model: str) -> bool:
    """GPT-5 family models have restricted parameter support."""
    normalized = model.lower().replace("openai/", "")
    return normalized.startswith("gpt-5")


def _is_o_series_model(model: str) -> bool:
    """OpenAI o-series reasoning models don't support temperature."""
    normalized = model.lower().replace("openai/", "")
    return normalized.startswith(("o1", "o3", "o4"))


def _build_kwargs(model: str, messages: list[dict[str, str]], timeout: float) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": 256,
        "timeout": timeout,
    }
    if not _is_gpt5_model(model) and not _is_o_series_model(model):
        kwargs["temperature"] = 0.0
    return kwargs


def _key_envs_for(model: str) -> tuple[str, ...]:
    lowered = model.lower()
    prefix = lowered.split("/", 1)[0]
    if prefix in _KEY_ENV:
        return _KEY_ENV[prefix]
    for stem, envs in _KEY_ENV.items():
        if lowered.startswith(stem):
            return envs
    return ()


class LiteLLMProvider(BaseProvider):
    name = "litellm"
    install_hint = (
        "Set providers.litellm_model in ~/.askai/config.yaml and export the matching API key "
        "(GEMINI_API_KEY, ANTHROPIC_API_KEY or OPENAI_API_KEY)."
    )

    def __init__(self, model: str, timeout: float = 60.0):
        super().__init__(timeout=timeout)
        self.model = model
        litellm.suppress_debug_info = True

    def probe(self) -> bool:
        envs = _key_envs_for(self.model)
        if not envs:
            # Local or self-hosted routes (ollama/..., etc.) carry no key
            return True
        return any(os.environ.get(env) for env in envs)

    def invoke(self, full_prompt: str) -> str:
        messages = [{"role": "user", "content": full_prompt}]
        start = time.monotonic()
        logger.debug(f"[PROVIDER] litellm → {self.model}")

        try:
            response = litellm.completion(**_build_kwargs(self.model, messages, self.timeout))
        except Exception as e:
            raise GenerationFailed(f"{self.model} request failed: {e}") from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.debug(f"[PROVIDER] litellm complete in {elapsed_ms}ms")

        try:
            return response.choices[0].message.content or ""
        except (AttributeError, IndexError) as e:
            raise GenerationFailed(f"{self.model} returned an unexpected payload") from e
