"""
ASKAI Risk Classifier

Pure, stateless. Two tiers:
  - Hard block: deny-listed patterns. The command is never offered for
    execution, whatever the approval mode.
  - Soft level: LOW / MEDIUM / HIGH. Advisory only.
"""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class RiskAssessment:
    level: RiskLevel
    reason: str = ""

    @property
    def blocked(self) -> bool:
        return self.level is RiskLevel.BLOCKED


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

_END = r"(?=$|[\s;&|)])"
_SEGMENTS = re.compile(r"[|;&()\n]")
_ROOT_OPERANDS = {"/", "/*"}
ROOT_DELETION = "recursive deletion of /"

BLOCK_RULES: list[tuple[str, re.Pattern[str]]] = [
    (ROOT_DELETION,
     re.compile(r"\brm\s+.*--no-preserve-root")),
    ("raw device overwrite",
     re.compile(r"\bdd\s+.*\bif=/dev/(?:zero|u?random)\b")),
    ("raw device overwrite",
     re.compile(r"\bdd\s+.*\bof=/dev/(?:sd|hd|nvme|disk|mmcblk|xvd)")),
    ("raw device overwrite",
     re.compile(r">\s*/dev/(?:sd|hd|nvme|disk|mmcblk|xvd)")),
    ("filesystem format",
     re.compile(r"\bmkfs(?:\.\w+)?\b")),
    ("fork bomb",
     re.compile(r":\s*\(\s*\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:")),
    ("moving the filesystem root",
     re.compile(r"\bmv\s+/\*\s")),
    ("recursive permission change on /",
     re.compile(r"\b(?:chmod|chown)\s+(?:-\S+\s+)*-[a-zA-Z]*R[a-zA-Z]*\s+\S+\s+/{_END}".format(_END=_END))),
]

HIGH_RULES: list[tuple[str, re.Pattern[str]]] = [
    ("recursive or forced delete",
     re.compile(r"\brm\s+(?:\S+\s+)*(?:--(?:recursive|force)\b|-[a-zA-Z]*[rRf])")),
    ("force push", re.compile(r"\bgit\s+push\b.*(?:--force\b|\s-f\b)")),
    ("hard reset", re.compile(r"\bgit\s+reset\s+.*--hard\b")),
    ("forced clean", re.compile(r"\bgit\s+clean\s+.*-[a-zA-Z]*f")),
    ("secure delete", re.compile(r"\bshred\b")),
    ("raw copy", re.compile(r"\bdd\s")),
    ("truncation", re.compile(r"\btruncate\s")),
    ("kill -9", re.compile(r"\bkill(?:all)?\s+-(?:9|KILL)\b")),
    ("destructive SQL", re.compile(r"\b(?:DROP\s+(?:TABLE|DATABASE|SCHEMA)|TRUNCATE\s+TABLE)\b", re.IGNORECASE)),
]

MEDIUM_RULES: list[tuple[str, re.Pattern[str]]] = [
    ("privilege escalation", re.compile(r"(?:^|[\s;&|(])(?:sudo|doas|pkexec)\b")),
    ("privilege escalation", re.compile(r"(?:^|[\s;&|(])su\s+-")),
]


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def _first_match(command: str, rules: list[tuple[str, re.Pattern[str]]]) -> str | None:
    for reason, pattern in rules:
        if pattern.search(command):
            return reason
    return None


def _tokens(segment: str) -> list[str]:
    try:
        return shlex.split(segment)
    except ValueError:
        # Unbalanced quotes
        return segment.split()


def _rm_targets_root(args: list[str]) -> bool:
    """True when an rm argument list is recursive and names / or /*."""
    recursive = False
    hits_root = False
    options_done = False
    for arg in args:
        if options_done or arg == "-" or not arg.startswith("-"):
            if arg in _ROOT_OPERANDS or (arg and arg.strip("/") == ""):
                hits_root = True
        elif arg == "--":
            options_done = True
        elif arg.startswith("--"):
            recursive = recursive or arg == "--recursive"
        else:
            recursive = recursive or "r" in arg or "R" in arg
    return recursive and hits_root


def deletes_root(command: str) -> bool:
    """
    Detect a recursive rm of the filesystem root.

    Every rm invocation in every pipeline segment is checked, with options
    read in any order, bundled or not, short or long.
    """
    for segment in _SEGMENTS.split(command):
        tokens = _tokens(segment)
        for i, token in enumerate(tokens):
            if token.split("/")[-1] == "rm" and _rm_targets_root(tokens[i + 1:]):
                return True
    return False


def assess(command: str, extra_patterns: Iterable[str] = ()) -> RiskAssessment:
    """Classify a command and report which rule decided it."""
    if deletes_root(command):
        return RiskAssessment(RiskLevel.BLOCKED, ROOT_DELETION)

    reason = _first_match(command, BLOCK_RULES)
    if reason:
        return RiskAssessment(RiskLevel.BLOCKED, reason)

    for raw in extra_patterns:
        if re.search(raw, command):
            return RiskAssessment(RiskLevel.BLOCKED, f"matches blocked pattern {raw!r}")

    reason = _first_match(command, HIGH_RULES)
    if reason:
        return RiskAssessment(RiskLevel.HIGH, reason)

    reason = _first_match(command, MEDIUM_RULES)
    if reason:
        return RiskAssessment(RiskLevel.MEDIUM, reason)

    return RiskAssessment(RiskLevel.LOW)


def classify(command: str, extra_patterns: Iterable[str] = ()) -> RiskLevel:
    return assess(command, extra_patterns).level
