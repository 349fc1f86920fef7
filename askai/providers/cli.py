"""
Subprocess-backed providers: external AI CLIs that take a prompt and
print a reply on stdout.
"""

from __future__ import annotations

import shutil
import subprocess
import time

from loguru import logger

from askai.errors import GenerationFailed, ProviderUnavailable
from askai.providers import BaseProvider


class CliProvider(BaseProvider):
    binary: str = ""

    def command_line(self, full_prompt: str) -> list[str]:
        return [self.binary, full_prompt]

    def probe(self) -> bool:
        return shutil.which(self.binary) is not None

    def invoke(self, full_prompt: str) -> str:
        argv = self.command_line(full_prompt)
        start = time.monotonic()
        logger.debug(f"[PROVIDER] {self.name} → {argv[0]} ({len(full_prompt)} chars)")

        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                stdin=subprocess.DEVNULL,
            )
        except FileNotFoundError as e:
            raise ProviderUnavailable(
                f"Provider '{self.name}' is not installed: {e}",
                provider=self.name,
                remediation=self.install_hint,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise GenerationFailed(
                f"{self.name} did not answer within {self.timeout:.0f}s"
            ) from e
        except OSError as e:
            raise GenerationFailed(f"{self.name} could not be started: {e}") from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.debug(f"[PROVIDER] {self.name} exited {result.returncode} in {elapsed_ms}ms")

        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise GenerationFailed(
                f"{self.name} exited with status {result.returncode}: {detail[:500]}"
            )
        return result.stdout


class GeminiProvider(CliProvider):
    name = "gemini"
    binary = "gemini"
    install_hint = "Install the Gemini CLI: npm install -g @google/gemini-cli"

    def command_line(self, full_prompt: str) -> list[str]:
        return [self.binary, "-p", full_prompt]


class ClaudeProvider(CliProvider):
    name = "claude"
    binary = "claude"
    install_hint = "Install the Claude CLI: npm install -g @anthropic-ai/claude-code"

    def command_line(self, full_prompt: str) -> list[str]:
        return [self.binary, "-p", full_prompt]


class CodexProvider(CliProvider):
    name = "codex"
    binary = "codex"
    install_hint = "Install the Codex CLI: npm install -g @openai/codex"
    extra_rules = "- Be concise and use standard Unix commands"

    def command_line(self, full_prompt: str) -> list[str]:
        return [self.binary, "exec", full_prompt]
