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

"""Compiled, read-only rule set."""

import re
from dataclasses import dataclass

from .models import ENV_FILTER, MASK, ConfigError, PatternRule, RedactFiles, RuleConfig

# Shell-style group references accepted in replacement templates
_DOLLAR_REF = re.compile(r"\$(?:\$|\{(\w+)\}|(\d+))")
# Python-style group references, after translation
_GROUP_REF = re.compile(r"\\(?:g<(\w+)>|(\d{1,2}))")


def to_python_template(template: str) -> str:
    """Translate `$1`, `${1}` and `${name}` references to `re` syntax."""

    def repl(m: re.Match[str]) -> str:
        if m.group() == "$$":
            return "$"
        return f"\\g<{m.group(1) or m.group(2)}>"

    return _DOLLAR_REF.sub(repl, template)


def template_error(pattern: re.Pattern[str], template: str) -> str | None:
    """Return an error if a translated template cannot be used with `pattern`."""
    for m in _GROUP_REF.finditer(template):
        ref = m.group(1) or m.group(2)
        if ref.isdigit():
            if int(ref) > pattern.groups:
                return f"replacement references missing group {ref}"
        elif ref not in pattern.groupindex:
            return f"replacement references unknown group '{ref}'"
    # sub() parses the whole template before scanning, so bad escapes
    # surface here even though nothing matches
    try:
        pattern.sub(template, "")
    except (re.error, IndexError) as e:
        return f"invalid replacement: {e}"
    return None


@dataclass(frozen=True)
class CompiledRule:
    """A pattern rule with its regex compiled and template resolved."""

    rule: PatternRule
    pattern: re.Pattern[str]
    template: str

    @property
    def name(self) -> str:
        return self.rule.name


@dataclass(frozen=True)
class RuleSet:
    """Merged rules with every matcher precompiled.

    Only the compiled form is consulted at decision time.
    """

    patterns: tuple[CompiledRule, ...]
    file_blocks: tuple[str, ...]
    search_blocks: tuple[str, ...]
    command_blocks: tuple[re.Pattern[str], ...]
    redact_files: RedactFiles

    @classmethod
    def compile(cls, config: RuleConfig) -> "RuleSet":
        """Compile a merged rule config, raising ConfigError on any bad regex."""
        patterns: list[CompiledRule] = []
        for rule in config.patterns:
            try:
                pattern = re.compile(rule.regex)
            except re.error as e:
                raise ConfigError(f"Pattern '{rule.name}': invalid regex: {e}") from e
            template = rule.replacement
            if template not in (MASK, ENV_FILTER):
                template = to_python_template(template)
                error = template_error(pattern, template)
                if error:
                    raise ConfigError(f"Pattern '{rule.name}': {error}")
            patterns.append(CompiledRule(rule=rule, pattern=pattern, template=template))

        command_blocks: list[re.Pattern[str]] = []
        for block in config.command_blocks:
            if not block:
                continue
            try:
                command_blocks.append(re.compile(block, re.IGNORECASE))
            except re.error as e:
                raise ConfigError(f"Command block '{block}': invalid regex: {e}") from e

        return cls(
            patterns=tuple(patterns),
            file_blocks=tuple(b for b in config.file_blocks if b),
            search_blocks=tuple(b for b in config.search_blocks if b),
            command_blocks=tuple(command_blocks),
            redact_files=RedactFiles(
                extensions=[e for e in config.redact_files.extensions if e],
                filename_patterns=[p for p in config.redact_files.filename_patterns if p],
            ),
        )
