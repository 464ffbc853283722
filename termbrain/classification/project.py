"""Project type detection from marker files in a directory."""

from __future__ import annotations

from pathlib import Path

UNKNOWN_PROJECT = "unknown"

# Checked in order; the first marker present decides the project type.
PROJECT_MARKERS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("Cargo.toml",), "rust"),
    (("go.mod",), "go"),
    (("requirements.txt", "pyproject.toml"), "python"),
    (("Gemfile",), "ruby"),
    (("pom.xml",), "java_maven"),
    (("build.gradle", "build.gradle.kts"), "java_gradle"),
    (("CMakeLists.txt",), "cpp_cmake"),
    (("Dockerfile", "docker-compose.yml"), "docker"),
)


def detect_project_type(directory: str | Path) -> str:
    """Return the project type for ``directory``, or "unknown"."""
    root = Path(directory)
    try:
        if (root / "package.json").is_file():
            return "typescript" if (root / "tsconfig.json").is_file() else "javascript"
        for markers, project_type in PROJECT_MARKERS:
            if any((root / marker).is_file() for marker in markers):
                return project_type
        if (root / ".git").is_dir():
            return "git_project"
    except OSError:
        pass
    return UNKNOWN_PROJECT
