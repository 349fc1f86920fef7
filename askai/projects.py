"""
ASKAI Project Discovery

Walks a directory tree to a bounded depth and classifies each directory
by the marker files it carries. Pure Python, no generator calls.
The detected kind is informational and scopes batch prompts.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class ProjectKind(str, Enum):
    RUST = "rust"
    NODE = "node"
    PYTHON = "python"
    GO = "go"
    JAVA = "java"
    RUBY = "ruby"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str) -> "ProjectKind":
        aliases = {
            "cargo": cls.RUST,
            "nodejs": cls.NODE,
            "npm": cls.NODE,
            "yarn": cls.NODE,
            "py": cls.PYTHON,
            "pip": cls.PYTHON,
            "golang": cls.GO,
            "maven": cls.JAVA,
            "gradle": cls.JAVA,
            "gem": cls.RUBY,
        }
        lowered = value.strip().lower()
        if lowered in aliases:
            return aliases[lowered]
        try:
            return cls(lowered)
        except ValueError:
            return cls.UNKNOWN


# Checked in order; the first matching kind is the primary one
MARKERS: list[tuple[ProjectKind, tuple[str, ...]]] = [
    (ProjectKind.RUST, ("Cargo.toml",)),
    (ProjectKind.NODE, ("package.json",)),
    (ProjectKind.PYTHON, ("pyproject.toml", "setup.py", "requirements.txt")),
    (ProjectKind.GO, ("go.mod",)),
    (ProjectKind.JAVA, ("pom.xml", "build.gradle", "build.gradle.kts")),
    (ProjectKind.RUBY, ("Gemfile",)),
]

DEFAULT_EXCLUDE_DIRS = (
    ".git", "node_modules", "target", "dist", "build",
    "__pycache__", ".venv", "venv", "site-packages",
)


@dataclass
class Project:
    path: Path
    kind: ProjectKind = ProjectKind.UNKNOWN
    kinds: list[ProjectKind] = field(default_factory=list)
    is_git: bool = False

    @property
    def name(self) -> str:
        return self.path.name or str(self.path)

    def to_context(self) -> str:
        lines = [f"Project: {self.name}", f"Project type: {self.kind.value}"]
        if len(self.kinds) > 1:
            lines.append(f"Also detected: {', '.join(k.value for k in self.kinds[1:])}")
        if self.is_git:
            lines.append("Version control: git")
        return "\n".join(lines)


@dataclass
class ScanResult:
    root: Path
    projects: list[Project] = field(default_factory=list)
    dirs_scanned: int = 0

    def summary(self) -> dict:
        kinds: dict[str, int] = {}
        for p in self.projects:
            kinds[p.kind.value] = kinds.get(p.kind.value, 0) + 1
        return {
            "total": len(self.projects),
            "dirs_scanned": self.dirs_scanned,
            "by_kind": kinds,
        }


def detect(path: Path) -> Project | None:
    """Classify one directory. Returns None when it carries no marker."""
    kinds = [
        kind for kind, files in MARKERS
        if any((path / name).exists() for name in files)
    ]
    is_git = (path / ".git").exists()
    if not kinds and not is_git:
        return None
    return Project(
        path=path,
        kind=kinds[0] if kinds else ProjectKind.UNKNOWN,
        kinds=kinds,
        is_git=is_git,
    )


class ProjectScanner:
    """Bounded-depth directory walk collecting project directories."""

    def __init__(self, max_depth: int = 3, exclude_dirs: list[str] | tuple[str, ...] | None = None):
        self.max_depth = max_depth
        self.exclude_dirs = set(exclude_dirs or DEFAULT_EXCLUDE_DIRS)

    def scan(self, root: Path, kind: ProjectKind | None = None) -> ScanResult:
        root = root.resolve()
        result = ScanResult(root=root)

        for dirpath, dirnames, _ in os.walk(root, followlinks=False):
            current = Path(dirpath)
            depth = len(current.relative_to(root).parts)
            result.dirs_scanned += 1

            project = detect(current)
            if project is not None and (kind is None or kind in project.kinds):
                result.projects.append(project)

            if depth >= self.max_depth:
                dirnames[:] = []
            else:
                dirnames[:] = sorted(
                    d for d in dirnames
                    if d not in self.exclude_dirs and not d.startswith(".")
                )

        result.projects.sort(key=lambda p: str(p.path))
        return result
