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

"""Command-line interface for cc-filter."""

import argparse
import json
import logging
import sys
import time
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import NoReturn

from .cache import RedactedCache
from .clipboard import get_clipboard
from .config import (
    get_cache_dir,
    get_rules_path,
    load_rules,
    load_rules_file,
    validate_rules_file,
)
from .log import setup_logging
from .matcher import PatternFilter
from .models import ConfigError
from .policy import PolicyChecker
from .processor import InputProcessor
from .rules import RuleSet

logger = logging.getLogger(__name__)

CLAUDE_SETTINGS_DIR = Path.home() / ".claude"
HOOK_COMMAND = "cc-filter"

EPILOG = """\
Reads text or a Claude Code hook event from stdin and writes the filtered
result to stdout. Exit code 2 means the input was blocked.

Rules are merged from configs/default-rules.yaml (or built-in defaults),
~/.cc-filter/config.yaml and ./config.yaml.
"""


def _version() -> str:
    try:
        return version("cc-filter")
    except PackageNotFoundError:
        return "dev"


class _FileCheckResult:
    """Result of checking a single file."""

    __slots__ = ("blocked", "matched", "error", "messages")

    def __init__(self) -> None:
        self.blocked = False
        self.matched = False
        self.error = False
        self.messages: list[str] = []


def _check_single_file(
    file_path: Path, policy: PolicyChecker, pattern_filter: PatternFilter, quiet: bool
) -> _FileCheckResult:
    """Check a single file against rules, return result."""
    result = _FileCheckResult()

    if not file_path.exists():
        result.error = True
        result.messages.append(f"Error: File not found: {file_path}")
        return result

    check = policy.check_file(str(file_path))
    if check.blocked:
        result.blocked = True
        result.messages.append(f"{file_path}:")
        result.messages.append(f"  BLOCKED: {check.reason}")
        return result

    try:
        content = file_path.read_text()
    except (OSError, UnicodeDecodeError):
        return result  # Skip binary/unreadable files

    filtered = pattern_filter.filter(content)
    if not filtered.changed:
        return result

    result.matched = True
    if not quiet:
        result.messages.append(f"{file_path}: redacted by {', '.join(filtered.matched)}")
    return result


def cmd_hook(args: argparse.Namespace) -> int:
    """Filter stdin as raw text or a Claude Code hook event."""
    setup_logging()
    start = time.monotonic()

    try:
        rules = load_rules()
    except ConfigError as e:
        logger.error("Failed to initialize filter: %s", e)
        print(f"Failed to initialize filter: {e}", file=sys.stderr)
        return 1

    processor = InputProcessor.from_rules(rules, RedactedCache(get_cache_dir()), get_clipboard())
    text = sys.stdin.read()
    result = processor.process(text)

    # Exit code 2 makes Claude Code reject the prompt
    if result.error is not None:
        print(result.error, file=sys.stderr)
        return 2

    sys.stdout.write(result.output)
    if result.changed:
        logger.info(
            "Filtering applied - input: %d bytes, output: %d bytes, duration: %.1fms",
            len(text),
            len(result.output),
            (time.monotonic() - start) * 1000,
        )
    return 0


def _run_validation(path: Path) -> int:
    """Run validation on a rules file, print errors, return exit code."""
    errors = validate_rules_file(path)
    if errors:
        print(f"Validation errors in {path}:", file=sys.stderr)
        for err in errors:
            print(f"  {err}", file=sys.stderr)
        return 1
    print(f"{path}: OK")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate rules file syntax."""
    path = Path(args.rules) if args.rules else get_rules_path(global_=args.glob)
    return _run_validation(path)


def _get_check_exit_code(blocked: bool, error: bool, matched: bool, quiet: bool) -> int:
    """Determine exit code and print message if needed."""
    if blocked:
        return 2
    if error:
        return 1
    if not matched and not quiet:
        print("No matches found")
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Scan file(s) against rules."""
    try:
        if args.rules:
            rules = RuleSet.compile(load_rules_file(Path(args.rules)))
        else:
            rules = load_rules()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    policy = PolicyChecker(rules)
    pattern_filter = PatternFilter(rules)
    any_blocked, any_matched, any_error = False, False, False

    for file_arg in args.files:
        result = _check_single_file(Path(file_arg), policy, pattern_filter, args.quiet)
        any_blocked |= result.blocked
        any_matched |= result.matched
        any_error |= result.error
        for msg in result.messages:
            print(msg, file=sys.stderr if result.error else sys.stdout)

    return _get_check_exit_code(any_blocked, any_error, any_matched, args.quiet)


def cmd_claude_setup(args: argparse.Namespace) -> int:
    """Configure Claude Code hooks in settings.json."""
    if args.glob:
        settings_path = CLAUDE_SETTINGS_DIR / "settings.json"
    else:
        settings_path = Path.cwd() / ".claude" / "settings.json"

    settings_path.parent.mkdir(parents=True, exist_ok=True)

    # Load existing settings
    if settings_path.exists():
        with settings_path.open() as f:
            settings = json.load(f)
    else:
        settings = {}

    hook = [{"type": "command", "command": HOOK_COMMAND}]
    hooks_config = {
        "PreToolUse": [{"matcher": "Read|Bash|Grep|Glob|Search", "hooks": hook}],
        "UserPromptSubmit": [{"hooks": hook}],
        "SessionEnd": [{"hooks": hook}],
    }

    if "hooks" not in settings:
        settings["hooks"] = {}

    settings["hooks"].update(hooks_config)

    with settings_path.open("w") as f:
        json.dump(settings, f, indent=2)

    print(f"Updated {settings_path}", file=sys.stderr)
    return 0


def main() -> int | NoReturn:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="cc-filter",
        description="Claude Code sensitive information filter",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {_version()}")
    subparsers = parser.add_subparsers(dest="command")

    # hook subcommand, also the default
    subparsers.add_parser("hook", help="Filter stdin (the default without a subcommand)")

    # validate subcommand
    validate_parser = subparsers.add_parser("validate", help="Validate rules file syntax")
    validate_parser.add_argument("--global", dest="glob", action="store_true", help="User rules")
    validate_parser.add_argument("--rules", help="Custom rules file")

    # check subcommand
    check_parser = subparsers.add_parser("check", help="Scan files against rules")
    check_parser.add_argument("files", nargs="+", help="Files to scan")
    check_parser.add_argument("--rules", help="Custom rules file")
    check_parser.add_argument("-q", "--quiet", action="store_true", help="Only output blocked")

    # claude-setup subcommand
    setup_parser = subparsers.add_parser("claude-setup", help="Configure Claude Code hooks")
    setup_parser.add_argument(
        "--global", dest="glob", action="store_true", help="Configure global settings"
    )

    args = parser.parse_args()

    if args.command in (None, "hook"):
        return cmd_hook(args)
    if args.command == "validate":
        return cmd_validate(args)
    if args.command == "check":
        return cmd_check(args)
    if args.command == "claude-setup":
        return cmd_claude_setup(args)

    parser.print_help()
    return 1
