"""
Daemon-first generation.

When the daemon is enabled and answering, requests go over the socket and
benefit from its warm cache and loaded providers. Transport failures fall
back to the in-process pipeline; generation and safety errors coming back
from the daemon are raised as-is.
"""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from askai.config_loader import AskAIConfig
from askai.daemon.client import DaemonClient
from askai.errors import CommandBlocked, DaemonNotRunning, IPCTimeout, ProtocolError
from askai.pipeline import GenerationPipeline, GenerationResult
from askai.safety import RiskLevel, assess


def generate(
    config: AskAIConfig,
    prompt: str,
    provider: str | None = None,
    use_cache: bool = True,
    cwd: Path | str | None = None,
    use_daemon: bool | None = None,
    pipeline: GenerationPipeline | None = None,
) -> GenerationResult:
    if use_daemon is None:
        use_daemon = config.daemon.enabled
    cwd = str(cwd or Path.cwd())

    if use_daemon:
        client = DaemonClient.from_config(config)
        try:
            response = client.generate(prompt, provider=provider, use_cache=use_cache, cwd=cwd)
        except (DaemonNotRunning, IPCTimeout, ProtocolError) as e:
            logger.debug(f"[PIPELINE] Daemon unavailable ({e.kind}), generating directly")
        else:
            return _from_daemon(config, response.command, response.risk_level, response.cache_hit,
                                response.provider or provider or config.default_provider)

    pipeline = pipeline or GenerationPipeline.from_config(config)
    return pipeline.generate(prompt, provider=provider, use_cache=use_cache, cwd=cwd)


def _from_daemon(config, command, risk_level, cache_hit, provider) -> GenerationResult:
    # Re-check locally: this process's blocked_patterns may be stricter than the daemon's
    assessment = assess(command, config.blocked_patterns)
    if assessment.blocked:
        raise CommandBlocked(
            f"Refusing dangerous command ({assessment.reason})",
            command=command,
            reason=assessment.reason,
        )
    try:
        level = RiskLevel(risk_level)
    except ValueError:
        level = assessment.level
    if _RANK[assessment.level] > _RANK[level]:
        level = assessment.level
    return GenerationResult(
        command=command,
        risk_level=level,
        cache_hit=cache_hit,
        provider=provider,
        reason=assessment.reason,
    )


_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2, RiskLevel.BLOCKED: 3}
