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

"""Routing of raw input to hook processors or the redaction engine."""

import json
from typing import Any

from .cache import RedactedCache
from .clipboard import Clipboard
from .hooks import ClaudeHookProcessor, HookProcessor, render_decision
from .matcher import PatternFilter
from .models import Blocked, ProcessResult
from .rules import RuleSet


def _decode_hook(text: str) -> dict[str, Any] | None:
    """Decode text as a JSON object, or return None if it is not one."""
    if not (text.startswith("{") and text.endswith("}")):
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


class InputProcessor:
    """Processes one input: a structured hook event or free-form text.

    Hook processors are consulted in registration order and the first one
    that claims the event decides it. Anything unclaimed is redacted as
    plain text.
    """

    def __init__(self, rules: RuleSet, processors: list[HookProcessor] | None = None) -> None:
        self.filter = PatternFilter(rules)
        self.processors: list[HookProcessor] = list(processors or [])

    @classmethod
    def from_rules(
        cls, rules: RuleSet, cache: RedactedCache, clipboard: Clipboard | None = None
    ) -> "InputProcessor":
        return cls(rules, [ClaudeHookProcessor(rules, cache, clipboard)])

    def register(self, processor: HookProcessor) -> None:
        self.processors.append(processor)

    def process(self, text: str) -> ProcessResult:
        text = text.strip()

        data = _decode_hook(text)
        if data is not None:
            for processor in self.processors:
                if not processor.can_handle(data):
                    continue
                decision = processor.process(data)
                if isinstance(decision, Blocked):
                    return ProcessResult(output="", changed=True, error=decision.user_message)
                return ProcessResult(output=render_decision(decision), changed=True)

        result = self.filter.filter(text)
        return ProcessResult(output=result.content, changed=result.changed)
