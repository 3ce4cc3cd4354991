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

"""Pattern redaction engine."""

import re

from .models import ENV_FILTER, FILTERED, MASK, FilterResult
from .rules import CompiledRule, RuleSet

MASK_CHAR = "*"


def _mask(match: re.Match[str]) -> str:
    return MASK_CHAR * len(match.group())


def _env_filter(match: re.Match[str]) -> str:
    """Keep `KEY=`, replace only the value."""
    text = match.group()
    key, sep, _ = text.partition("=")
    if not sep:
        return text
    return f"{key}={FILTERED}"


class PatternFilter:
    """Rewrites text by applying every pattern rule in order."""

    def __init__(self, rules: RuleSet) -> None:
        self.rules = rules

    def _apply(self, compiled: CompiledRule, text: str) -> str:
        if compiled.template == MASK:
            return compiled.pattern.sub(_mask, text)
        if compiled.template == ENV_FILTER:
            return compiled.pattern.sub(_env_filter, text)
        return compiled.pattern.sub(compiled.template, text)

    def filter(self, text: str) -> FilterResult:
        """Run text through every rule.

        Each rule sees the output of the previous one, so rules may
        compound. A rule only counts as a change if the text differs
        afterwards.
        """
        result = FilterResult(content=text)
        for compiled in self.rules.patterns:
            before = result.content
            result.content = self._apply(compiled, before)
            if result.content != before:
                result.changed = True
                result.matched.append(compiled.name)
        return result
