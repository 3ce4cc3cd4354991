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

"""Tests for block and redact predicates."""

from typing import Any

import pytest

from cc_filter.config import parse_rules
from cc_filter.policy import PolicyChecker
from cc_filter.rules import RuleSet


def make_checker(**data: Any) -> PolicyChecker:
    return PolicyChecker(RuleSet.compile(parse_rules(data)))


@pytest.fixture
def checker() -> PolicyChecker:
    return make_checker(
        file_blocks=[".env", "*.pem", "secret", "id_rsa*"],
        search_blocks=["password", "Token"],
        command_blocks=["cat.*env", "printenv", r"grep\s+-r.*key"],
        redact_files={"extensions": [".swift", ".PY"], "filename_patterns": ["config"]},
    )


def test_glob_block_is_case_insensitive(checker: PolicyChecker) -> None:
    """Test that *.pem blocks an uppercase .PEM path."""
    check = checker.check_file("/tmp/Server.PEM")
    assert check.blocked is True
    assert check.reason == "Access denied to sensitive file: /tmp/Server.PEM"


def test_substring_block(checker: PolicyChecker) -> None:
    """Test that a plain entry matches as a substring."""
    assert checker.check_file("/home/user/my_secrets.txt").blocked is True
    assert checker.check_file("/home/user/MY_SECRETS.txt").blocked is True


def test_env_file_blocked(checker: PolicyChecker) -> None:
    """Test .env and variants are blocked by substring."""
    assert checker.check_file("/project/.env").blocked is True
    assert checker.check_file("/project/.env.production").blocked is True


def test_glob_block_matches_filename(checker: PolicyChecker) -> None:
    """Test that a glob anchored at the filename matches nested paths."""
    assert checker.check_file("/home/user/.ssh/id_rsa").blocked is True
    assert checker.check_file("/home/user/.ssh/id_rsa.pub").blocked is True


def test_unrelated_file_allowed(checker: PolicyChecker) -> None:
    """Test that a normal source file is not blocked."""
    check = checker.check_file("/project/src/main.py")
    assert check.blocked is False
    assert check.reason == ""


def test_search_block_case_insensitive(checker: PolicyChecker) -> None:
    """Test search blocks match any case, in either direction."""
    assert checker.check_search("PASSWORD\\s*=").blocked is True
    check = checker.check_search("access_token")
    assert check.blocked is True
    assert check.reason == "Search pattern may expose sensitive data: access_token"


def test_search_allowed(checker: PolicyChecker) -> None:
    """Test harmless search patterns are allowed."""
    assert checker.check_search("def main").blocked is False


def test_command_block(checker: PolicyChecker) -> None:
    """Test command blocks are regexes over the lowercased command."""
    check = checker.check_command("cat /etc/environ; printenv")
    assert check.blocked is True
    assert "cat /etc/environ; printenv" in check.reason
    assert checker.check_command("PRINTENV HOME").blocked is True
    assert checker.check_command("grep -r API_KEY .").blocked is True


def test_command_allowed(checker: PolicyChecker) -> None:
    """Test harmless commands are allowed."""
    assert checker.check_command("ls -la").blocked is False


def test_uppercase_command_block_pattern() -> None:
    """Test that command block regexes are matched case-insensitively."""
    checker = make_checker(command_blocks=["PrintEnv"])
    assert checker.check_command("printenv").blocked is True


def test_glob_pattern_containment(checker: PolicyChecker) -> None:
    """Test that glob patterns are checked by plain containment."""
    check = checker.check_glob("**/*.pem")
    assert check.blocked is True
    assert check.reason == "Pattern may expose sensitive files: **/*.pem"
    assert checker.check_glob("config/.env*").blocked is True


def test_glob_pattern_is_case_sensitive(checker: PolicyChecker) -> None:
    """Test that glob pattern containment does not fold case."""
    assert checker.check_glob("**/*.PEM").blocked is False
    assert checker.check_glob("**/*.py").blocked is False


def test_should_redact_extension(checker: PolicyChecker) -> None:
    """Test extension matching is a case-insensitive suffix match."""
    assert checker.should_redact_file("/app/Config.SWIFT") is True
    assert checker.should_redact_file("/app/main.py") is True
    assert checker.should_redact_file("/app/main.rs") is False


def test_should_redact_filename_pattern(checker: PolicyChecker) -> None:
    """Test filename patterns only look at the base name."""
    assert checker.should_redact_file("/app/AppConfig.json") is True
    assert checker.should_redact_file("/config/app.json") is False


def test_redaction_disabled_without_criteria() -> None:
    """Test that empty criteria never mark a file for redaction."""
    checker = make_checker(redact_files={"extensions": [], "filename_patterns": [""]})
    assert checker.should_redact_file("/app/config.swift") is False


def test_empty_block_entries_ignored() -> None:
    """Test that empty strings in block lists never match."""
    checker = make_checker(file_blocks=[""], search_blocks=[""], command_blocks=[""])
    assert checker.check_file("/app/main.py").blocked is False
    assert checker.check_search("anything").blocked is False
    assert checker.check_command("ls").blocked is False
    assert checker.check_glob("*").blocked is False
