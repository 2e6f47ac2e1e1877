"""
Unit tests for the schema override file loader.

The loader follows the mapping-loader conventions: a missing or empty file
yields empty overrides, malformed content raises ValueError naming the file.
"""

import pytest
import yaml

from dump_importer.config.overrides import SchemaOverrides, load_schema_overrides


@pytest.fixture
def override_file(tmp_path):
    """Create a temporary override file with every section populated."""
    data = {
        "type_overrides": {"TINYINT": "bool", "year": "INT64", "char": "string(36)"},
        "exclude_columns": {"audit_log": ["raw_payload"]},
        "rename_columns": {"orders": {"desc": "description"}},
    }
    path = tmp_path / "overrides.yml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


@pytest.mark.unit
class TestLoadSchemaOverrides:
    """Tests for load_schema_overrides()."""

    def test_none_path_returns_empty(self):
        """No configured file means no overrides."""
        overrides = load_schema_overrides(None)

        assert overrides.is_empty

    def test_missing_file_returns_empty(self, tmp_path):
        """A missing file is not an error."""
        overrides = load_schema_overrides(tmp_path / "absent.yml")

        assert overrides.is_empty

    def test_empty_file_returns_empty(self, tmp_path):
        """An empty YAML document yields empty overrides."""
        path = tmp_path / "empty.yml"
        path.write_text("", encoding="utf-8")

        assert load_schema_overrides(path).is_empty

    def test_loads_all_sections(self, override_file):
        """Type names are normalized; table sections are kept as written."""
        overrides = load_schema_overrides(override_file)

        assert overrides.type_overrides == {"tinyint": "BOOL", "year": "INT64", "char": "STRING(36)"}
        assert overrides.excluded("audit_log") == ["raw_payload"]
        assert overrides.renames("orders") == {"desc": "description"}
        assert overrides.excluded("orders") == []

    def test_invalid_yaml_raises(self, tmp_path):
        """YAML syntax errors name the file."""
        path = tmp_path / "broken.yml"
        path.write_text("type_overrides: [unclosed", encoding="utf-8")

        with pytest.raises(ValueError) as exc_info:
            load_schema_overrides(path)

        assert "broken.yml" in str(exc_info.value)

    def test_non_mapping_document_raises(self, tmp_path):
        """The top level must be a mapping."""
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ValueError, match="expected dict"):
            load_schema_overrides(path)

    def test_unknown_target_type_raises(self, tmp_path):
        """Override targets must be known target type names."""
        path = tmp_path / "bad_type.yml"
        path.write_text("type_overrides:\n  tinyint: SMALLINT\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Unknown target type 'SMALLINT'"):
            load_schema_overrides(path)


@pytest.mark.unit
def test_schema_overrides_model_defaults():
    """A default SchemaOverrides has no entries."""
    overrides = SchemaOverrides()

    assert overrides.is_empty
    assert overrides.renames("anything") == {}
