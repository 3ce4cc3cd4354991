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

"""Block and redact predicates for files, searches and commands."""

from fnmatch import fnmatchcase
from pathlib import PurePath

from .models import BlockCheck
from .rules import RuleSet

_GLOB_CHARS = ("*", "?", "[")

ALLOWED = BlockCheck(blocked=False)


def _is_glob(pattern: str) -> bool:
    return any(c in pattern for c in _GLOB_CHARS)


class PolicyChecker:
    """Answers whether a file, search or command should be blocked.

    All checks are pure functions of the rule set and their argument.
    """

    def __init__(self, rules: RuleSet) -> None:
        self.rules = rules

    def _match_file_block(self, block: str, path: str) -> bool:
        """Match one file block entry against a lowercased path."""
        block = block.lower()
        if not _is_glob(block):
            return block in path
        # Try the full path, then just the filename
        if fnmatchcase(path, block):
            return True
        return fnmatchcase(PurePath(path).name, block)

    def check_file(self, path: str) -> BlockCheck:
        path_lower = path.lower()
        for block in self.rules.file_blocks:
            if self._match_file_block(block, path_lower):
                return BlockCheck(blocked=True, reason=f"Access denied to sensitive file: {path}")
        return ALLOWED

    def check_search(self, pattern: str) -> BlockCheck:
        pattern_lower = pattern.lower()
        for block in self.rules.search_blocks:
            if block.lower() in pattern_lower:
                return BlockCheck(
                    blocked=True, reason=f"Search pattern may expose sensitive data: {pattern}"
                )
        return ALLOWED

    def check_command(self, command: str) -> BlockCheck:
        command_lower = command.lower()
        for block in self.rules.command_blocks:
            if block.search(command_lower):
                return BlockCheck(
                    blocked=True, reason=f"Command may expose sensitive data: {command}"
                )
        return ALLOWED

    def check_glob(self, pattern: str) -> BlockCheck:
        """Check a glob pattern itself against file blocks.

        The candidate is a pattern rather than a path, so this is plain
        case-sensitive containment and never glob matching.
        """
        for block in self.rules.file_blocks:
            if block in pattern:
                return BlockCheck(
                    blocked=True, reason=f"Pattern may expose sensitive files: {pattern}"
                )
        return ALLOWED

    def should_redact_file(self, path: str) -> bool:
        """Whether a file's content should be served redacted.

        Never blocks by itself. Empty criteria disable redaction entirely.
        """
        criteria = self.rules.redact_files
        if not criteria.enabled:
            return False

        path_lower = path.lower()
        if any(path_lower.endswith(ext.lower()) for ext in criteria.extensions):
            return True

        name = PurePath(path).name.lower()
        return any(p.lower() in name for p in criteria.filename_patterns)
