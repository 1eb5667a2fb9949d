"""Deterministic risk rules.

Fixed pattern matching over the tool name and its ``command`` / ``path``
arguments. Cheap, auditable, and consulted before any judgment call.
"""

import re
from typing import Any

from tollgate.approval.models import Classification, RiskLevel

READ_ONLY_TOOLS = frozenset(
    {"read_file", "list_dir", "search", "git_status", "git_log", "git_diff"}
)

BANNED_COMMANDS = re.compile(r"\b(sudo|rm\s+-rf|curl|wget|nc|ssh|scp|telnet|eval|exec|alias)\b")
# /usr/bin/curl, ./wget and friends; the name must start a word or follow a slash
BANNED_BINARY_PATHS = re.compile(r"(?:^|[\s/])(curl|wget|nc|ncat|ssh|scp|telnet)\b")
# Interpreters used to sidestep the curl/wget ban
SCRIPT_NETWORK = re.compile(
    r"\b(python3?|node|ruby|perl|php)\b.*"
    r"\b(urllib|requests|http\.get|fetch|Net::HTTP|socket|open-uri|fsockopen|file_get_contents)\b",
    re.IGNORECASE,
)
BASE64_EXEC = re.compile(r"base64\s+(-d|--decode)|atob\s*\(|Buffer\.from\s*\([^)]*,\s*['\"]base64['\"]\)")
CHMOD_EXEC = re.compile(r"chmod\s+\+x")
PROCESS_SUBSTITUTION = re.compile(r"<\(|>\(|<<<\s*\$")

INJECTION = re.compile(r"`|\$\(|&&|\|\||(?<![|]);")
FORCE_PUSH = re.compile(r"git\s+push\s+.*--force")
SENSITIVE_PATHS = re.compile(r"\.(env|ssh|pem|key|credentials|secret)", re.IGNORECASE)
CONFIG_FILES = re.compile(
    r"\.github/workflows|package\.json|tsconfig\.json|Dockerfile|\.eslintrc|\.prettierrc"
    r"|pyproject\.toml|setup\.cfg"
)

# Command rules in precedence order: (pattern, level, reason)
COMMAND_RULES: list[tuple[re.Pattern[str], RiskLevel, str]] = [
    (BANNED_COMMANDS, RiskLevel.L3, "banned command"),
    (BANNED_BINARY_PATHS, RiskLevel.L3, "banned command (path variant)"),
    (SCRIPT_NETWORK, RiskLevel.L3, "network access via scripting language"),
    (BASE64_EXEC, RiskLevel.L3, "base64 decode detected, possible payload"),
    (CHMOD_EXEC, RiskLevel.L3, "marks file executable, download-and-run pattern"),
    (PROCESS_SUBSTITUTION, RiskLevel.L3, "process substitution detected"),
    (INJECTION, RiskLevel.L3, "injection pattern detected"),
    (FORCE_PUSH, RiskLevel.L3, "irreversible remote overwrite"),
]


def _string_arg(args: dict[str, Any], key: str) -> str:
    value = args.get(key)
    return value if isinstance(value, str) else ""


def _rule(level: RiskLevel, reason: str) -> Classification:
    return Classification(level=level, reason=reason, deterministic=True)


def classify_deterministic(tool_name: str, args: dict[str, Any]) -> Classification | None:
    """Classify a tool call using fixed rules only.

    The first matching rule wins. Read-only tools are L0; dangerous commands,
    injection signatures, force pushes and credential files are L3; project
    configuration files are L2.

    Args:
        tool_name: Name of the tool being invoked
        args: Tool arguments; only ``command`` and ``path`` are inspected

    Returns:
        Classification | None: The verdict, or None when no rule applies and
        the caller has to escalate to a judgment classification
    """
    if tool_name in READ_ONLY_TOOLS:
        return _rule(RiskLevel.L0, "read-only, no mutation")

    command = _string_arg(args, "command")
    path = _string_arg(args, "path")

    for pattern, level, reason in COMMAND_RULES:
        if pattern.search(command):
            return _rule(level, reason)

    if SENSITIVE_PATHS.search(path) or SENSITIVE_PATHS.search(command):
        return _rule(RiskLevel.L3, "sensitive file access")

    if CONFIG_FILES.search(path) or CONFIG_FILES.search(command):
        return _rule(RiskLevel.L2, "configuration change requires approval")

    return None
