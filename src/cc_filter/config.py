# Copyright 2025 Lars Marowsky-Brée <lars@marowsky-bree.eu>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Configuration loading for filter rules."""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

from .models import ENV_FILTER, FILTERED, MASK, ConfigError, PatternRule, RedactFiles, RuleConfig
from .rules import RuleSet, template_error, to_python_template

logger = logging.getLogger(__name__)

USER_CONFIG_DIR = Path.home() / ".cc-filter"
USER_RULES_FILE = USER_CONFIG_DIR / "config.yaml"
PROJECT_RULES_FILE = "config.yaml"
DEFAULT_RULES_FILE = Path("configs") / "default-rules.yaml"

DEFAULT_CACHE_DIR = Path("/tmp/claude/redacted")
DEFAULT_LOG_FILE = USER_CONFIG_DIR / "filter.log"

LIST_FIELDS = ("file_blocks", "search_blocks", "command_blocks")

DEFAULT_RULES: dict[str, Any] = {
    "patterns": [
        {
            "name": "api_keys",
            "regex": r"""(?i)(api[_-]?keys?\s*[:=]\s*['"]?)[a-zA-Z0-9_\-]{20,}""",
            "replacement": "${1}***FILTERED***",
        },
        {
            "name": "openai_keys",
            "regex": r"sk-[a-zA-Z0-9]{48}",
            "replacement": MASK,
        },
        {
            "name": "secret_assignments",
            "regex": (
                r"""(?i)((?:secret[_-]?key|client[_-]?secret|access[_-]?token|auth[_-]?token)"""
                r"""\s*[:=]\s*['"]?)[a-zA-Z0-9_\-/+.=]{8,}"""
            ),
            "replacement": "${1}***FILTERED***",
        },
        {
            "name": "database_urls",
            "regex": (
                r"(?i)\b((?:postgres(?:ql)?|mysql|mongodb(?:\+srv)?|redis|amqp)"
                r"://[^:\s/@]+:)[^@\s]+@"
            ),
            "replacement": "${1}***FILTERED***@",
        },
        {
            "name": "private_keys",
            "regex": (
                r"-----BEGIN (?:[A-Z]+ )?PRIVATE KEY-----[\s\S]*?"
                r"-----END (?:[A-Z]+ )?PRIVATE KEY-----"
            ),
            "replacement": "***FILTERED PRIVATE KEY***",
        },
        {
            "name": "slack_tokens",
            "regex": r"xox[baprs]-[a-zA-Z0-9-]{10,}",
            "replacement": MASK,
        },
        {
            "name": "github_tokens",
            "regex": r"gh[pousr]_[a-zA-Z0-9]{36}",
            "replacement": MASK,
        },
        {
            "name": "aws_access_keys",
            "regex": r"\bAKIA[0-9A-Z]{16}\b",
            "replacement": MASK,
        },
        {
            "name": "env_vars",
            "regex": (
                r"(?m)^[ \t]*(?:export[ \t]+)?[A-Z][A-Z0-9_]*"
                r"(?:SECRET|TOKEN|PASSWORD|PASSWD|PRIVATE_KEY)[A-Z0-9_]*=\S+"
            ),
            "replacement": ENV_FILTER,
        },
    ],
    "file_blocks": [
        ".env",
        ".env.local",
        "*.key",
        "*.pem",
        "*secret*",
        "id_rsa",
        "id_ed25519",
    ],
    "search_blocks": ["api", "key", "secret", "password", "token"],
    "command_blocks": ["cat.*env", "printenv", "grep.*secret"],
    "redact_files": {"extensions": [], "filename_patterns": []},
}


def get_cache_dir() -> Path:
    """Cache root for redacted copies, fixed for the process lifetime."""
    return Path(os.environ.get("CC_FILTER_CACHE_DIR") or DEFAULT_CACHE_DIR)


def get_log_file() -> Path:
    return Path(os.environ.get("CC_FILTER_LOG_FILE") or DEFAULT_LOG_FILE)


def _string_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key) or []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"'{key}' must be a list of strings")
    return list(value)


def _parse_pattern(data: Any) -> PatternRule:
    if not isinstance(data, dict) or "name" not in data or "regex" not in data:
        raise ConfigError("each pattern must be a mapping with 'name' and 'regex'")
    replacement = data.get("replacement")
    return PatternRule(
        name=str(data["name"]),
        regex=str(data["regex"]),
        replacement=FILTERED if replacement is None else str(replacement),
    )


def parse_rules(data: Any) -> RuleConfig:
    """Parse a rules document into a RuleConfig, raising ConfigError on bad shape."""
    if data is None:
        return RuleConfig()
    if not isinstance(data, dict):
        raise ConfigError("expected a mapping at the top level")

    patterns = data.get("patterns") or []
    if not isinstance(patterns, list):
        raise ConfigError("'patterns' must be a list")

    redact = data.get("redact_files") or {}
    if not isinstance(redact, dict):
        raise ConfigError("'redact_files' must be a mapping")

    return RuleConfig(
        patterns=[_parse_pattern(p) for p in patterns],
        file_blocks=_string_list(data, "file_blocks"),
        search_blocks=_string_list(data, "search_blocks"),
        command_blocks=_string_list(data, "command_blocks"),
        redact_files=RedactFiles(
            extensions=_string_list(redact, "extensions"),
            filename_patterns=_string_list(redact, "filename_patterns"),
        ),
    )


def load_rules_file(path: Path) -> RuleConfig:
    """Load one rules layer from a YAML file.

    A missing file is an empty layer. Read, syntax and shape errors raise
    ConfigError; callers decide whether that is fatal.
    """
    if not path.exists():
        return RuleConfig()
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"{path}: YAML syntax error: {e}") from e
    except OSError as e:
        raise ConfigError(f"{path}: cannot read rules file: {e}") from e
    try:
        return parse_rules(data)
    except ConfigError as e:
        raise ConfigError(f"{path}: {e}") from e


def _merge_strings(base: list[str], override: list[str]) -> list[str]:
    """Ordered union, first occurrence wins."""
    return list(dict.fromkeys([*base, *override]))


def merge_rules(base: RuleConfig, override: RuleConfig) -> RuleConfig:
    """Merge two layers.

    Patterns merge by name, the override replacing the base rule in place.
    String lists merge as ordered unions with base order first.
    """
    patterns_by_name: dict[str, PatternRule] = {}
    for rule in base.patterns:
        patterns_by_name[rule.name] = rule
    for rule in override.patterns:
        patterns_by_name[rule.name] = rule

    return RuleConfig(
        patterns=list(patterns_by_name.values()),
        file_blocks=_merge_strings(base.file_blocks, override.file_blocks),
        search_blocks=_merge_strings(base.search_blocks, override.search_blocks),
        command_blocks=_merge_strings(base.command_blocks, override.command_blocks),
        redact_files=RedactFiles(
            extensions=_merge_strings(
                base.redact_files.extensions, override.redact_files.extensions
            ),
            filename_patterns=_merge_strings(
                base.redact_files.filename_patterns, override.redact_files.filename_patterns
            ),
        ),
    )


def _load_optional_layer(path: Path) -> RuleConfig:
    """Load a user or project layer; broken layers are skipped."""
    try:
        return load_rules_file(path)
    except (ConfigError, OSError) as e:
        logger.warning("Skipping rules layer %s: %s", path, e)
        return RuleConfig()


def load_default_rules(path: Path | None = None) -> RuleConfig:
    """Load the default layer from `path`, or the built-in defaults if absent."""
    if path is not None and path.exists():
        return load_rules_file(path)
    return parse_rules(DEFAULT_RULES)


def load_rules(
    project_dir: Path | None = None,
    default_file: Path | None = None,
    user_file: Path | None = None,
) -> RuleSet:
    """Load, merge and compile default, user and project rules.

    Later layers override earlier ones. Raises ConfigError if the default
    layer is malformed or any regex in the merged set fails to compile.
    """
    if project_dir is None:
        project_dir = Path.cwd()
    if default_file is None:
        default_file = project_dir / DEFAULT_RULES_FILE
    if user_file is None:
        user_file = USER_RULES_FILE

    rules = load_default_rules(default_file)
    rules = merge_rules(rules, _load_optional_layer(user_file))
    rules = merge_rules(rules, _load_optional_layer(project_dir / PROJECT_RULES_FILE))
    return RuleSet.compile(rules)


def get_rules_path(global_: bool = False, project_dir: Path | None = None) -> Path:
    """Get the path to the user or project rules file."""
    if global_:
        return USER_RULES_FILE
    if project_dir is None:
        project_dir = Path.cwd()
    return project_dir / PROJECT_RULES_FILE


def _validate_pattern(rule: dict[str, Any], index: int, seen_names: set[str]) -> list[str]:
    """Validate a single pattern dict, return list of errors."""
    errors: list[str] = []
    prefix = f"Pattern {index + 1}"

    if "name" not in rule:
        errors.append(f"{prefix}: missing required field 'name'")
    else:
        name = rule["name"]
        prefix = f"Pattern '{name}'"
        if name in seen_names:
            errors.append(f"{prefix}: duplicate name")
        seen_names.add(name)

    if "regex" not in rule:
        errors.append(f"{prefix}: missing required field 'regex'")
        return errors

    try:
        pattern = re.compile(str(rule["regex"]))
    except re.error as e:
        errors.append(f"{prefix}: invalid regex: {e}")
        return errors

    replacement = rule.get("replacement")
    if replacement is not None and replacement not in (MASK, ENV_FILTER):
        error = template_error(pattern, to_python_template(str(replacement)))
        if error:
            errors.append(f"{prefix}: {error}")

    return errors


def _validate_string_list(data: dict[str, Any], key: str, prefix: str = "") -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        return [f"'{prefix}{key}' must be a list"]
    return [
        f"'{prefix}{key}' entry {i + 1}: must be a string"
        for i, v in enumerate(value)
        if not isinstance(v, str)
    ]


def validate_rules_file(path: Path) -> list[str]:
    """Validate a rules file, return list of error messages (empty if valid)."""
    if not path.exists():
        return []

    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        return [f"YAML syntax error: {e}"]
    except OSError as e:
        return [f"Cannot read rules file: {e}"]

    if data is None:
        return []

    if not isinstance(data, dict):
        return ["Invalid format: expected a mapping"]

    errors: list[str] = []

    patterns = data.get("patterns")
    if patterns is not None:
        if not isinstance(patterns, list):
            errors.append("Invalid format: 'patterns' must be a list")
        else:
            seen_names: set[str] = set()
            for i, rule in enumerate(patterns):
                if not isinstance(rule, dict):
                    errors.append(f"Pattern {i + 1}: must be a mapping")
                    continue
                errors.extend(_validate_pattern(rule, i, seen_names))

    for key in LIST_FIELDS:
        errors.extend(_validate_string_list(data, key))

    commands = data.get("command_blocks")
    if isinstance(commands, list):
        for block in commands:
            if not isinstance(block, str):
                continue
            try:
                re.compile(block, re.IGNORECASE)
            except re.error as e:
                errors.append(f"Command block '{block}': invalid regex: {e}")

    redact = data.get("redact_files")
    if redact is not None:
        if not isinstance(redact, dict):
            errors.append("Invalid format: 'redact_files' must be a mapping")
        else:
            errors.extend(_validate_string_list(redact, "extensions", "redact_files."))
            errors.extend(_validate_string_list(redact, "filename_patterns", "redact_files."))

    return errors
