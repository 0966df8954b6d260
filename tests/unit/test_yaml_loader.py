# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for quota and pattern override file loading."""

from pathlib import Path

import pytest

from src.core.config.yaml_loader import (
    YAMLLoadError,
    deep_merge,
    load_optional_yaml,
    load_yaml,
)

QUOTA_SECTIONS = ("monthly", "pool", "member")


@pytest.fixture
def quota_file(tmp_path: Path) -> Path:
    """Provide a quota override file touching one cell."""
    path = tmp_path / "quotas.yaml"
    path.write_text("monthly:\n  free:\n    homework_help: 20\n")
    return path


class TestLoadYaml:
    """Tests for load_yaml."""

    def test_quota_overrides(self, quota_file: Path) -> None:
        """Test a quota file parses into nested tier tables."""
        assert load_yaml(quota_file, QUOTA_SECTIONS) == {"monthly": {"free": {"homework_help": 20}}}

    def test_pattern_entry_types(self, tmp_path: Path) -> None:
        """Test pattern entries keep their lists, numbers, booleans and nulls."""
        path = tmp_path / "patterns.yaml"
        path.write_text(
            "patterns:\n"
            "  - pattern: '^open billing'\n"
            "    responses: [Opening Billing...]\n"
            "    ttl_seconds: 1800\n"
            "    roles: [principal]\n"
            "    uses_platform_knowledge: true\n"
            "    required_context: null\n"
        )

        entry = load_yaml(path, ("patterns",))["patterns"][0]

        assert entry == {
            "pattern": "^open billing",
            "responses": ["Opening Billing..."],
            "ttl_seconds": 1800,
            "roles": ["principal"],
            "uses_platform_knowledge": True,
            "required_context": None,
        }

    @pytest.mark.parametrize("content", ["", "# tuned by ops, nothing yet\n"])
    def test_empty_file_means_no_overrides(self, tmp_path: Path, content: str) -> None:
        """Test empty and comment-only files yield an empty mapping."""
        path = tmp_path / "quotas.yaml"
        path.write_text(content)

        assert load_yaml(path, QUOTA_SECTIONS) == {}

    def test_misspelled_section_is_rejected(self, tmp_path: Path) -> None:
        """Test a section outside the accepted set names itself."""
        path = tmp_path / "quotas.yaml"
        path.write_text("mothly:\n  free:\n    homework_help: 20\n")

        with pytest.raises(YAMLLoadError) as exc_info:
            load_yaml(path, QUOTA_SECTIONS)

        assert "mothly" in exc_info.value.reason
        assert "monthly" in exc_info.value.reason

    def test_any_section_without_restriction(self, tmp_path: Path) -> None:
        """Test no section list accepts any top-level key."""
        path = tmp_path / "extra.yaml"
        path.write_text("anything: 1\n")

        assert load_yaml(path) == {"anything": 1}

    def test_list_root_is_rejected(self, tmp_path: Path) -> None:
        """Test a bare list of patterns is not a valid document."""
        path = tmp_path / "patterns.yaml"
        path.write_text("- pattern: '^hi'\n- pattern: '^bye'\n")

        with pytest.raises(YAMLLoadError) as exc_info:
            load_yaml(path)

        assert "YAML root must be a mapping, got list" in str(exc_info.value)

    def test_invalid_syntax(self, tmp_path: Path) -> None:
        """Test unparsable YAML is reported as a syntax error."""
        path = tmp_path / "quotas.yaml"
        path.write_text("monthly: [free, pro\n")

        with pytest.raises(YAMLLoadError) as exc_info:
            load_yaml(path)

        assert "Invalid YAML syntax" in str(exc_info.value)

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test a missing file is reported as such."""
        with pytest.raises(YAMLLoadError) as exc_info:
            load_yaml(tmp_path / "quotas.yaml")

        assert exc_info.value.reason == "File does not exist"

    def test_directory(self, tmp_path: Path) -> None:
        """Test a directory is not accepted as a file."""
        with pytest.raises(YAMLLoadError) as exc_info:
            load_yaml(tmp_path)

        assert exc_info.value.reason == "Path is not a file"
        assert exc_info.value.path == tmp_path


class TestLoadOptionalYaml:
    """Tests for load_optional_yaml."""

    @pytest.mark.parametrize("path", [None, ""])
    def test_unset_setting(self, path: str | None) -> None:
        """Test an unset file setting yields no overrides."""
        assert load_optional_yaml(path, QUOTA_SECTIONS) == {}

    def test_string_path(self, quota_file: Path) -> None:
        """Test settings pass paths as strings."""
        assert load_optional_yaml(str(quota_file), QUOTA_SECTIONS)["monthly"]["free"] == {
            "homework_help": 20
        }

    def test_configured_but_missing(self, tmp_path: Path) -> None:
        """Test a configured path that does not exist is a deployment error."""
        with pytest.raises(YAMLLoadError):
            load_optional_yaml(str(tmp_path / "missing.yaml"))


class TestDeepMerge:
    """Tests for deep_merge."""

    def test_single_cell_keeps_rest_of_tier(self) -> None:
        """Test overriding one feature keeps the tier's other features."""
        base = {"monthly": {"free": {"homework_help": 15, "chat_completions": 100}}}
        override = {"monthly": {"free": {"homework_help": 20}, "pro": {"homework_help": 400}}}

        assert deep_merge(base, override) == {
            "monthly": {
                "free": {"homework_help": 20, "chat_completions": 100},
                "pro": {"homework_help": 400},
            }
        }

    def test_scalar_replaces_table(self) -> None:
        """Test a non-mapping override replaces a whole table."""
        assert deep_merge({"pool": {"free": {"homework_help": 100}}}, {"pool": None}) == {
            "pool": None
        }

    def test_role_lists_are_replaced(self) -> None:
        """Test pattern role lists are replaced, not concatenated."""
        assert deep_merge({"roles": ["teacher", "principal"]}, {"roles": ["principal"]}) == {
            "roles": ["principal"]
        }

    def test_inputs_untouched(self) -> None:
        """Test neither input is modified."""
        base = {"free": {"homework_help": 15}}
        override = {"free": {"homework_help": 20}}

        deep_merge(base, override)

        assert base == {"free": {"homework_help": 15}}
        assert override == {"free": {"homework_help": 20}}
