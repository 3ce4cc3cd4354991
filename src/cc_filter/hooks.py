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

"""Claude Code hook handlers."""

import json
import logging
from pathlib import Path
from typing import Any, Protocol

from .cache import RedactedCache
from .clipboard import Clipboard
from .matcher import PatternFilter
from .models import (
    Allow,
    AllowWithRedirect,
    BlockCheck,
    Blocked,
    Decision,
    Deny,
    DenyWithRedirect,
    HookEvent,
    PassThrough,
    PreToolUse,
    SessionEnd,
    Unrecognized,
    UserPromptSubmit,
)
from .policy import PolicyChecker
from .rules import RuleSet

logger = logging.getLogger(__name__)

HOOK_EVENTS = ("PreToolUse", "UserPromptSubmit", "SessionEnd")
EMPTY_OUTPUT = "{}"
SEPARATOR = "─" * 40


class HookProcessor(Protocol):
    """A handler for one family of structured hook inputs."""

    def can_handle(self, data: dict[str, Any]) -> bool: ...

    def process(self, data: dict[str, Any]) -> Decision: ...


def parse_event(data: dict[str, Any]) -> HookEvent:
    """Classify a decoded hook payload."""
    event = data.get("hook_event_name")
    if event == "PreToolUse":
        tool_name = data.get("tool_name")
        tool_input = data.get("tool_input")
        return PreToolUse(
            tool_name=tool_name if isinstance(tool_name, str) else "",
            tool_input=tool_input if isinstance(tool_input, dict) else {},
        )
    if event == "UserPromptSubmit":
        prompt = data.get("prompt")
        return UserPromptSubmit(prompt=prompt if isinstance(prompt, str) else "")
    if event == "SessionEnd":
        return SessionEnd()
    return Unrecognized(data=data)


def _pre_tool_use_output(decision: str, **extra: Any) -> str:
    output: dict[str, Any] = {"hookEventName": "PreToolUse", "permissionDecision": decision}
    output.update(extra)
    return json.dumps({"hookSpecificOutput": output})


def redirect_reason(original_path: str, redacted_path: str) -> str:
    return (
        "SECRETS DETECTED - File contains sensitive data.\n\n"
        f"Original: {original_path}\n\n"
        "A redacted version has been created. Please read this file instead:\n\n"
        f"    {redacted_path}"
    )


def render_decision(decision: Decision) -> str:
    """Serialize a non-blocking decision for the agent.

    Blocked decisions have no stdout form; the caller reports them as an
    error instead.
    """
    if isinstance(decision, Allow):
        return _pre_tool_use_output("allow")
    if isinstance(decision, AllowWithRedirect):
        return _pre_tool_use_output("allow", updatedInput={"file_path": decision.new_path})
    if isinstance(decision, Deny):
        return _pre_tool_use_output("deny", permissionDecisionReason=decision.reason)
    if isinstance(decision, DenyWithRedirect):
        reason = redirect_reason(decision.original_path, decision.redacted_path)
        return _pre_tool_use_output("deny", permissionDecisionReason=reason)
    if isinstance(decision, PassThrough):
        return decision.raw_text
    raise TypeError(f"{type(decision).__name__} has no hook output")


class ClaudeHookProcessor:
    """Turns Claude Code hook events into allow, deny or block decisions."""

    def __init__(
        self,
        rules: RuleSet,
        cache: RedactedCache,
        clipboard: Clipboard | None = None,
    ) -> None:
        self.rules = rules
        self.cache = cache
        self.clipboard = clipboard
        self.policy = PolicyChecker(rules)
        self.filter = PatternFilter(rules)

    def can_handle(self, data: dict[str, Any]) -> bool:
        return data.get("hook_event_name") in HOOK_EVENTS

    def process(self, data: dict[str, Any]) -> Decision:
        return self.decide(parse_event(data))

    def decide(self, event: HookEvent) -> Decision:
        if isinstance(event, PreToolUse):
            return self.handle_pre_tool_use(event)
        if isinstance(event, UserPromptSubmit):
            return self.handle_user_prompt_submit(event)
        if isinstance(event, SessionEnd):
            return self.handle_session_end()
        return PassThrough(json.dumps(event.data))

    def handle_pre_tool_use(self, event: PreToolUse) -> Decision:
        tool_input = event.tool_input
        if event.tool_name == "Read":
            decision = self._handle_read(_str_arg(tool_input, "file_path"))
        elif event.tool_name == "Bash":
            decision = self._deny_if(self.policy.check_command(_str_arg(tool_input, "command")))
        elif event.tool_name in ("Grep", "Search"):
            decision = self._deny_if(self.policy.check_search(_str_arg(tool_input, "pattern")))
        elif event.tool_name == "Glob":
            decision = self._deny_if(self.policy.check_glob(_str_arg(tool_input, "pattern")))
        else:
            decision = Allow()

        if not isinstance(decision, Allow):
            logger.info("%s: %s", event.tool_name, type(decision).__name__)
        return decision

    def _deny_if(self, check: BlockCheck) -> Decision:
        if check.blocked:
            return Deny(reason=check.reason)
        return Allow()

    def _handle_read(self, file_path: str) -> Decision:
        if not file_path:
            return Allow()

        # Redacted copies must stay readable or the redirect would loop
        if self.cache.contains(file_path):
            return Allow()

        check = self.policy.check_file(file_path)
        if check.blocked:
            return Deny(reason=check.reason)

        if not self.policy.should_redact_file(file_path):
            return Allow()

        try:
            content = Path(file_path).expanduser().read_text(errors="replace")
        except (OSError, UnicodeError) as e:
            logger.warning("Cannot read %s for redaction, allowing: %s", file_path, e)
            return Allow()

        result = self.filter.filter(content)
        if not result.changed:
            return Allow()

        try:
            redacted_path = self.cache.store_file(file_path, result.content)
        except (OSError, UnicodeError) as e:
            logger.warning("Cannot cache redacted copy of %s, allowing: %s", file_path, e)
            return Allow()

        logger.info(
            "Redirecting read of %s to %s (%s)", file_path, redacted_path, ", ".join(result.matched)
        )
        return DenyWithRedirect(original_path=file_path, redacted_path=str(redacted_path))

    def handle_user_prompt_submit(self, event: UserPromptSubmit) -> Decision:
        result = self.filter.filter(event.prompt)
        if not result.changed:
            return PassThrough(EMPTY_OUTPUT)

        logger.info("Prompt blocked, matched: %s", ", ".join(result.matched))
        try:
            saved_path = self.cache.store_prompt(event.prompt, result.content)
        except (OSError, UnicodeError) as e:
            logger.warning("Cannot save redacted prompt: %s", e)
            return Blocked(user_message="BLOCKED: Sensitive content detected in your message.")

        detected = "".join(f"  • {name}\n" for name in result.matched)
        lines = [
            "⛔ BLOCKED: Sensitive content detected",
            "",
            "Detected patterns:",
            detected,
            "Your message (redacted):",
            SEPARATOR,
            result.content,
            SEPARATOR,
            "",
            f"Redacted copy saved to: {saved_path}",
        ]
        status = self._copy_to_clipboard(result.content)
        if status:
            lines.append(status)
        return Blocked(user_message="\n".join(lines))

    def _copy_to_clipboard(self, text: str) -> str | None:
        """Best-effort clipboard copy, reported as a status line."""
        if self.clipboard is None:
            return None
        try:
            self.clipboard(text)
        except Exception as e:
            logger.warning("Clipboard copy failed: %s", e)
            return "⚠ Could not copy to clipboard"
        return "✓ Copied to clipboard - paste to continue"

    def handle_session_end(self) -> Decision:
        try:
            self.cache.purge()
        except OSError as e:
            logger.warning("SessionEnd cleanup warning: %s", e)
        return PassThrough(EMPTY_OUTPUT)


def _str_arg(tool_input: dict[str, Any], key: str) -> str:
    value = tool_input.get(key)
    return value if isinstance(value, str) else ""
