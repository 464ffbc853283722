"""Command classification: semantic type, intent and complexity.

Every function here is pure and total. Rules are evaluated top to bottom and
the first match wins, so the order of the tables is part of the behavior:
``npm test`` is package management because the package-manager rule comes
before the testing rule.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from termbrain.classification.project import detect_project_type

DEFAULT_SEMANTIC_TYPE = "general"
DEFAULT_INTENT = "unknown"
MAX_COMPLEXITY = 5

_REDIRECTION = re.compile(r"[<>]+")
_CONTROL_FLOW = re.compile(r"\b(for|while|if|case)\b")


@dataclass(frozen=True)
class Rule:
    """Matches when the command starts with a prefix or contains a substring."""

    result: str
    prefixes: tuple[str, ...] = ()
    substrings: tuple[str, ...] = ()

    def matches(self, command: str) -> bool:
        return command.startswith(self.prefixes) or any(s in command for s in self.substrings)


SEMANTIC_RULES: tuple[Rule, ...] = (
    Rule("version_control", prefixes=("git",)),
    Rule("package_management", prefixes=("npm", "yarn", "pnpm", "bun")),
    Rule("containerization", prefixes=("docker", "kubectl", "podman")),
    Rule("testing", prefixes=("jest", "pytest", "mocha"), substrings=("test", "spec")),
    Rule(
        "code_quality",
        prefixes=("prettier", "black", "rustfmt"),
        substrings=("lint", "format"),
    ),
    Rule("building", prefixes=("make", "cargo build", "go build", "mvn")),
    Rule("http_request", prefixes=("curl", "wget", "http", "fetch")),
    Rule("remote_access", prefixes=("ssh", "scp", "rsync")),
    Rule("editing", prefixes=("vim", "nvim", "emacs", "code", "subl")),
    Rule("navigation", prefixes=("cd", "ls", "find", "grep", "rg", "fd")),
    Rule("database", prefixes=("psql", "mysql", "mongo", "redis-cli")),
    Rule("code_execution", prefixes=("python", "node", "ruby", "go run", "cargo run")),
    Rule("termbrain", prefixes=("tb", "termbrain")),
)

INTENT_RULES: tuple[Rule, ...] = (
    Rule("install", substrings=("install", "add")),
    Rule("remove", substrings=("remove", "delete", "uninstall")),
    Rule("build", substrings=("build", "compile")),
    Rule("test", substrings=("test", "check")),
    Rule("execute", substrings=("run", "start", "exec")),
    Rule("stop", substrings=("stop", "kill")),
    Rule("list", substrings=("list", "ls", "show")),
    Rule("search", substrings=("search", "find", "grep")),
    Rule("edit", substrings=("edit", "modify", "change")),
    Rule("deploy", substrings=("deploy", "push", "publish")),
)


@dataclass(frozen=True)
class Classification:
    semantic_type: str
    project_type: str
    intent: str
    complexity: int


def _first_match(rules: tuple[Rule, ...], command: str, default: str) -> str:
    for rule in rules:
        if rule.matches(command):
            return rule.result
    return default


def semantic_type(command: str) -> str:
    return _first_match(SEMANTIC_RULES, command.strip(), DEFAULT_SEMANTIC_TYPE)


def intent(command: str) -> str:
    return _first_match(INTENT_RULES, command.strip(), DEFAULT_INTENT)


def complexity(command: str) -> int:
    """Score a command from 1 (plain) to 5 (pipelines, substitutions, loops)."""
    score = 1
    score += command.count("|")
    score += len(_REDIRECTION.findall(command))
    if "$(" in command or "`" in command:
        score += 1
    if _CONTROL_FLOW.search(command):
        score += 2
    return min(score, MAX_COMPLEXITY)


def classify(command: str, directory: str) -> Classification:
    """Classify a raw command line run in ``directory``."""
    return Classification(
        semantic_type=semantic_type(command),
        project_type=detect_project_type(directory),
        intent=intent(command),
        complexity=complexity(command),
    )
