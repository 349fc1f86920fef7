"""
Prompt template shared by every provider.

One template keeps all generators on the same contract: a single shell
command back, nothing else.
"""

from __future__ import annotations

COMMAND_RULES = """You are a shell command generator. Convert natural language to a single shell command.

RULES:
- Output ONLY the command (no explanations, no markdown)
- Do NOT say "I cannot" or similar - just output the command
- Be precise and accurate"""

EXAMPLES = """Examples:
"파일 목록" -> ls -la
"git 상태" -> git status
"txt 파일 찾기" -> find . -name "*.txt"
"현재 시간" -> date"""


def build_command_prompt(prompt: str, context: str, extra_rules: str | None = None) -> str:
    """Assemble the full generator prompt.

    Args:
        prompt (str): The user's natural-language request.
        context (str): Environment and history context.
        extra_rules (str | None, optional): Provider-specific rule lines.

    Returns:
        str: The prompt text sent to the generator.
    """
    parts = [COMMAND_RULES]
    if extra_rules:
        parts[0] += f"\n{extra_rules}"
    parts.append(f"Context:\n{context.strip() or '(none)'}")
    parts.append(f"Request: {prompt.strip()}")
    parts.append(EXAMPLES)
    parts.append("Command:")
    return "\n\n".join(parts)
