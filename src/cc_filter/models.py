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

"""Data models for filter rules, hook events and decisions."""

from dataclasses import dataclass, field
from typing import Any

MASK = "mask"
ENV_FILTER = "env_filter"
FILTERED = "***FILTERED***"


class FilterError(Exception):
    """Base class for cc-filter errors."""


class ConfigError(FilterError):
    """Rule definitions are unparsable or invalid."""


class ClipboardError(FilterError):
    """Copying to the system clipboard failed."""


@dataclass
class PatternRule:
    """A content rule: matches of `regex` are rewritten per `replacement`.

    `replacement` is a substitution template, or one of the special modes
    `mask` and `env_filter`.
    """

    name: str
    regex: str
    replacement: str = FILTERED


@dataclass
class RedactFiles:
    """Criteria for files whose content is redacted rather than blocked."""

    extensions: list[str] = field(default_factory=list)
    filename_patterns: list[str] = field(default_factory=list)

    @property
    def enabled(self) -> bool:
        return any(self.extensions) or any(self.filename_patterns)


@dataclass
class RuleConfig:
    """One uncompiled layer of rules, as read from a rules file."""

    patterns: list[PatternRule] = field(default_factory=list)
    file_blocks: list[str] = field(default_factory=list)
    search_blocks: list[str] = field(default_factory=list)
    command_blocks: list[str] = field(default_factory=list)
    redact_files: RedactFiles = field(default_factory=RedactFiles)


@dataclass
class FilterResult:
    """Result of running text through every pattern rule."""

    content: str
    changed: bool = False
    matched: list[str] = field(default_factory=list)


@dataclass
class BlockCheck:
    """Outcome of a policy predicate."""

    blocked: bool
    reason: str = ""


# Hook events


@dataclass
class PreToolUse:
    tool_name: str
    tool_input: dict[str, Any] = field(default_factory=dict)


@dataclass
class UserPromptSubmit:
    prompt: str


@dataclass
class SessionEnd:
    pass


@dataclass
class Unrecognized:
    data: dict[str, Any]


HookEvent = PreToolUse | UserPromptSubmit | SessionEnd | Unrecognized


# Decisions


@dataclass
class Allow:
    pass


@dataclass
class AllowWithRedirect:
    new_path: str


@dataclass
class Deny:
    reason: str


@dataclass
class DenyWithRedirect:
    original_path: str
    redacted_path: str


@dataclass
class PassThrough:
    raw_text: str


@dataclass
class Blocked:
    user_message: str


Decision = Allow | AllowWithRedirect | Deny | DenyWithRedirect | PassThrough | Blocked


@dataclass
class ProcessResult:
    """What the entry point should emit for one input.

    `error` is only set for a hard rejection; the caller must not print
    `output` in that case.
    """

    output: str
    changed: bool = False
    error: str | None = None

    @property
    def blocked(self) -> bool:
        return self.error is not None
