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

"""Tests for configuration loading."""

import logging
from pathlib import Path

import pytest

from cc_filter.config import (
    DEFAULT_CACHE_DIR,
    DEFAULT_RULES,
    get_cache_dir,
    load_rules,
    load_rules_file,
    merge_rules,
    parse_rules,
    validate_rules_file,
)
from cc_filter.models import FILTERED, ConfigError, PatternRule, RuleConfig
from cc_filter.rules import RuleSet


@pytest.fixture
def layers(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate the user layer and return an empty project directory."""
    user_dir = tmp_path / "user"
    user_dir.mkdir()
    monkeypatch.setattr("cc_filter.config.USER_RULES_FILE", user_dir / "config.yaml")
    project_dir = tmp_path / "project"
    project_dir.mkdir()
    return project_dir


def test_load_missing_file(tmp_path: Path) -> None:
    """Test loading from non-existent file returns an empty layer."""
    assert load_rules_file(tmp_path / "config.yaml") == RuleConfig()


def test_load_rules_file(tmp_path: Path) -> None:
    """Test loading rules from YAML file."""
    path = tmp_path / "config.yaml"
    path.write_text("""
patterns:
  - name: test-rule
    regex: "secret.*"
    replacement: mask
  - name: no-replacement
    regex: "hidden"
file_blocks: [".env"]
search_blocks: ["password"]
command_blocks: ["printenv"]
redact_files:
  extensions: [".swift"]
  filename_patterns: ["config"]
""")
    config = load_rules_file(path)
    assert config.patterns[0] == PatternRule(name="test-rule", regex="secret.*", replacement="mask")
    assert config.patterns[1].replacement == FILTERED
    assert config.file_blocks == [".env"]
    assert config.search_blocks == ["password"]
    assert config.command_blocks == ["printenv"]
    assert config.redact_files.extensions == [".swift"]
    assert config.redact_files.filename_patterns == ["config"]


def test_load_empty_file(tmp_path: Path) -> None:
    """Test that an empty YAML document is an empty layer."""
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert load_rules_file(path) == RuleConfig()


def test_load_rules_file_bad_shape(tmp_path: Path) -> None:
    """Test that a wrongly shaped document raises ConfigError."""
    path = tmp_path / "config.yaml"
    path.write_text("file_blocks: .env\n")
    with pytest.raises(ConfigError, match="file_blocks"):
        load_rules_file(path)


def test_merge_pattern_override_by_name() -> None:
    """Test that an override replaces a base rule with the same name."""
    base = RuleConfig(patterns=[PatternRule("x", "a"), PatternRule("y", "c")])
    override = RuleConfig(patterns=[PatternRule("x", "b"), PatternRule("z", "d")])
    merged = merge_rules(base, override)
    assert [(p.name, p.regex) for p in merged.patterns] == [("x", "b"), ("y", "c"), ("z", "d")]


def test_merge_string_lists_ordered_union() -> None:
    """Test that lists merge by first occurrence, base order first."""
    base = RuleConfig(file_blocks=[".env", "*.pem"], search_blocks=["key"])
    override = RuleConfig(file_blocks=["*.PEM", ".env", "id_rsa"], search_blocks=["key"])
    merged = merge_rules(base, override)
    assert merged.file_blocks == [".env", "*.pem", "*.PEM", "id_rsa"]
    assert merged.search_blocks == ["key"]


def test_merge_redact_files() -> None:
    """Test redact criteria merge like the other lists."""
    base = parse_rules({"redact_files": {"extensions": [".py"]}})
    override = parse_rules(
        {"redact_files": {"extensions": [".py", ".go"], "filename_patterns": ["cfg"]}}
    )
    merged = merge_rules(base, override)
    assert merged.redact_files.extensions == [".py", ".go"]
    assert merged.redact_files.filename_patterns == ["cfg"]


def test_builtin_defaults_compile() -> None:
    """Test that the built-in defaults form a valid rule set."""
    rules = RuleSet.compile(parse_rules(DEFAULT_RULES))
    assert [p.name for p in rules.patterns][:2] == ["api_keys", "openai_keys"]
    assert ".env" in rules.file_blocks
    assert rules.redact_files.enabled is False


def test_load_rules_uses_builtin_defaults(layers: Path) -> None:
    """Test that without any files the built-in defaults apply."""
    rules = load_rules(layers)
    assert "printenv" in [p.pattern for p in rules.command_blocks]
    assert "api_keys" in [p.name for p in rules.patterns]


def test_load_rules_merges_layers(layers: Path, tmp_path: Path) -> None:
    """Test that project rules override user rules, which override defaults."""
    (layers / "configs").mkdir()
    (layers / "configs" / "default-rules.yaml").write_text("""
patterns:
  - name: shared
    regex: default-pattern
  - name: default-only
    regex: default-only
file_blocks: [".env"]
""")
    (tmp_path / "user" / "config.yaml").write_text("""
patterns:
  - name: shared
    regex: user-pattern
file_blocks: ["*.pem"]
""")
    (layers / "config.yaml").write_text("""
patterns:
  - name: shared
    regex: project-pattern
  - name: project-only
    regex: project-only
file_blocks: [".env", "id_rsa"]
""")

    rules = load_rules(layers)
    by_name = {p.name: p.rule.regex for p in rules.patterns}
    assert by_name == {
        "shared": "project-pattern",
        "default-only": "default-only",
        "project-only": "project-only",
    }
    assert list(rules.file_blocks) == [".env", "*.pem", "id_rsa"]


def test_default_file_replaces_builtins(layers: Path) -> None:
    """Test that a default rules file takes the place of built-in defaults."""
    (layers / "configs").mkdir()
    (layers / "configs" / "default-rules.yaml").write_text("search_blocks: [hunter2]\n")
    rules = load_rules(layers)
    assert rules.search_blocks == ("hunter2",)
    assert rules.patterns == ()


def test_broken_user_layer_is_skipped(
    layers: Path, tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Test that an unparsable user layer is skipped with a warning."""
    (tmp_path / "user" / "config.yaml").write_text("patterns: [unclosed\n")
    (layers / "config.yaml").write_text("search_blocks: [project]\n")
    with caplog.at_level(logging.WARNING, logger="cc_filter.config"):
        rules = load_rules(layers)
    assert "project" in rules.search_blocks
    assert "Skipping rules layer" in caplog.text


def test_badly_shaped_project_layer_is_skipped(layers: Path) -> None:
    """Test that a project layer with the wrong shape is ignored."""
    (layers / "config.yaml").write_text("- just\n- a list\n")
    rules = load_rules(layers)
    assert "api_keys" in [p.name for p in rules.patterns]


def test_broken_default_file_is_fatal(layers: Path) -> None:
    """Test that a malformed default layer aborts loading."""
    (layers / "configs").mkdir()
    (layers / "configs" / "default-rules.yaml").write_text("patterns: {oops\n")
    with pytest.raises(ConfigError):
        load_rules(layers)


def test_invalid_regex_is_fatal(layers: Path) -> None:
    """Test that a regex compile failure in any layer aborts loading."""
    (layers / "config.yaml").write_text("""
patterns:
  - name: broken
    regex: "([unclosed"
""")
    with pytest.raises(ConfigError, match="broken"):
        load_rules(layers)


def test_invalid_command_block_is_fatal(layers: Path) -> None:
    """Test that a bad command block regex aborts loading."""
    (layers / "config.yaml").write_text("command_blocks: ['cat (']\n")
    with pytest.raises(ConfigError, match="Command block"):
        load_rules(layers)


def test_missing_template_group_is_fatal() -> None:
    """Test that a template referencing a missing group fails at compile time."""
    config = parse_rules({"patterns": [{"name": "t", "regex": "(a)", "replacement": "$2"}]})
    with pytest.raises(ConfigError, match="missing group 2"):
        RuleSet.compile(config)


def test_cache_dir_default_and_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Test the cache root default and its environment override."""
    monkeypatch.delenv("CC_FILTER_CACHE_DIR", raising=False)
    assert get_cache_dir() == DEFAULT_CACHE_DIR
    monkeypatch.setenv("CC_FILTER_CACHE_DIR", str(tmp_path))
    assert get_cache_dir() == tmp_path


def test_validate_valid_file(tmp_path: Path) -> None:
    """Test validation of a correct file."""
    path = tmp_path / "config.yaml"
    path.write_text("""
patterns:
  - name: ok
    regex: '(key=)\\w+'
    replacement: '${1}x'
command_blocks: ["printenv"]
redact_files:
  extensions: [".py"]
""")
    assert validate_rules_file(path) == []


def test_validate_missing_file(tmp_path: Path) -> None:
    """Test that a missing file validates as empty."""
    assert validate_rules_file(tmp_path / "none.yaml") == []


def test_validate_reports_errors(tmp_path: Path) -> None:
    """Test that validation collects every problem."""
    path = tmp_path / "config.yaml"
    path.write_text("""
patterns:
  - name: dup
    regex: a
  - name: dup
    regex: b
  - regex: c
  - name: bad-regex
    regex: "("
  - name: bad-template
    regex: "(a)"
    replacement: "${name}"
  - not-a-mapping
file_blocks: [".env", 3]
command_blocks: ["("]
redact_files: []
""")
    errors = validate_rules_file(path)
    assert "Pattern 'dup': duplicate name" in errors
    assert "Pattern 3: missing required field 'name'" in errors
    assert any(e.startswith("Pattern 'bad-regex': invalid regex") for e in errors)
    assert "Pattern 'bad-template': replacement references unknown group 'name'" in errors
    assert "Pattern 6: must be a mapping" in errors
    assert "'file_blocks' entry 2: must be a string" in errors
    assert any(e.startswith("Command block '(': invalid regex") for e in errors)
    assert "Invalid format: 'redact_files' must be a mapping" in errors


def test_validate_yaml_syntax_error(tmp_path: Path) -> None:
    """Test that YAML syntax errors are reported."""
    path = tmp_path / "config.yaml"
    path.write_text("patterns: [\n")
    errors = validate_rules_file(path)
    assert len(errors) == 1
    assert errors[0].startswith("YAML syntax error")


def test_bad_template_escape_is_fatal() -> None:
    """Test that a template with a bad escape fails at compile time."""
    config = parse_rules(
        {"patterns": [{"name": "path", "regex": "secret", "replacement": r"C:\path"}]}
    )
    with pytest.raises(ConfigError, match="Pattern 'path': invalid replacement"):
        RuleSet.compile(config)


def test_validate_reports_bad_template_escape(tmp_path: Path) -> None:
    """Test that validation catches the same template errors as loading."""
    path = tmp_path / "config.yaml"
    path.write_text("patterns:\n  - name: path\n    regex: secret\n    replacement: 'C:\\path'\n")
    errors = validate_rules_file(path)
    assert len(errors) == 1
    assert errors[0].startswith("Pattern 'path': invalid replacement")


def test_unreadable_rules_file(tmp_path: Path) -> None:
    """Test that a rules file that cannot be read raises ConfigError."""
    path = tmp_path / "config.yaml"
    path.mkdir()
    with pytest.raises(ConfigError, match="cannot read rules file"):
        load_rules_file(path)
    assert validate_rules_file(path)[0].startswith("Cannot read rules file")


def test_unreadable_default_file_is_fatal(layers: Path) -> None:
    """Test that an unreadable default layer aborts loading."""
    (layers / "configs" / "default-rules.yaml").mkdir(parents=True)
    with pytest.raises(ConfigError):
        load_rules(layers)
