"""
Generator output post-processing.

Turns whatever a generator printed into one command line, or fails with
GenerationFailed when the reply is not a command at all.
"""

from __future__ import annotations

import re

from askai.errors import GenerationFailed

CODE_BLOCK = re.compile(r"```(?:bash|sh|shell|zsh|console)?[ \t]*\n(.*?)\n?```", re.DOTALL)

REFUSAL_MARKERS = (
    "i am unable to",
    "i cannot",
    "i can't",
    "i will try to find",
    "i'm sorry",
    "as an ai",
    "i don't have the ability",
)

EXPLANATION_PREFIXES = (
    "here is the command:",
    "the command is:",
    "you can use:",
    "try this:",
    "run this:",
    "execute:",
    "command:",
)


def extract_command(raw: str) -> str:
    """Extract the command from a generator reply.

    Raises:
        GenerationFailed: If the reply is empty or an explanation instead of a command.
    """
    text = raw.strip()
    lowered = text.lower()

    for marker in REFUSAL_MARKERS:
        if marker in lowered:
            raise GenerationFailed(
                f"Generator returned an explanation instead of a command: {text[:200]}"
            )

    if "```" in text:
        match = CODE_BLOCK.search(text)
        if match:
            text = match.group(1)
        else:
            text = re.sub(r"```(?:bash|sh|shell|zsh|console)?", "", text)
        text = text.strip()

    for prefix in EXPLANATION_PREFIXES:
        if text.lower().startswith(prefix):
            text = text[len(prefix):].strip()

    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if len(lines) > 1:
        # A leading description line is followed by the actual command
        if lines[0].endswith(":") or len(lines[0]) > 50:
            text = lines[1]
        else:
            text = lines[0]
    elif lines:
        text = lines[0]
    else:
        text = ""

    text = text.strip().strip("`").strip()
    if text.startswith("$ "):
        text = text[2:].strip()

    if not text:
        raise GenerationFailed("Generator returned an empty command")
    return text
