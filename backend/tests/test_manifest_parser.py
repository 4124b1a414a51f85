"""
Tests for package.json parsing.
"""

import pytest

from services.manifest_parser import (
    DEFAULT_VERSION,
    ManifestError,
    parse_manifest_text,
    read_manifest,
    strip_json_comments,
)


class TestStripJsonComments:
    def test_removes_line_and_block_comments(self):
        text = '{\n  // the name\n  "name": "a", /* inline */ "version": "1.0.0"\n}'
        assert strip_json_comments(text).replace(" ", "").replace("\n", "") == '{"name":"a","version":"1.0.0"}'

    def test_keeps_comment_markers_inside_strings(self):
        text = '{"homepage": "https://example.com/a", "note": "/* not a comment */"}'
        assert strip_json_comments(text) == text

    def test_drops_trailing_commas(self):
        text = '{"dependencies": {"a": "^1",}, "files": ["dist",],}'
        assert strip_json_comments(text) == '{"dependencies": {"a": "^1"}, "files": ["dist"]}'

    def test_escaped_quote_does_not_end_string(self):
        text = '{"description": "say \\"hi\\" // ok"}'
        assert strip_json_comments(text) == text


class TestParseManifestText:
    def test_full_manifest(self):
        manifest = parse_manifest_text("""
        {
          "name": "@acme/a",
          "version": "1.2.0",
          "description": "Service A",
          "private": true,
          "dependencies": {"@acme/b": "^1"},
          "devDependencies": {"vitest": "^3.0.0"},
          "scripts": {"test": "vitest"}
        }
        """)

        assert manifest.name == "@acme/a"
        assert manifest.version == "1.2.0"
        assert manifest.description == "Service A"
        assert manifest.private is True
        assert manifest.dependencies == {"@acme/b": "^1"}
        assert manifest.dev_dependencies == {"vitest": "^3.0.0"}
        assert manifest.rejected_keys == []

    def test_missing_version_defaults(self):
        manifest = parse_manifest_text('{"name": "a"}')
        assert manifest.version == DEFAULT_VERSION
        assert manifest.dependencies == {}
        assert manifest.private is False

    def test_missing_name_is_fatal(self):
        with pytest.raises(ManifestError, match="missing name"):
            parse_manifest_text('{"version": "1.0.0"}')

    def test_invalid_json_is_fatal(self):
        with pytest.raises(ManifestError, match="invalid JSON"):
            parse_manifest_text('{"name": ')

    def test_non_string_dependency_rejected_per_key(self):
        manifest = parse_manifest_text(
            '{"name": "a", "dependencies": {"good": "^1", "bad": 2, "worse": {"v": "1"}}}'
        )

        assert manifest.dependencies == {"good": "^1"}
        assert manifest.rejected_keys == ["dependencies.bad", "dependencies.worse"]

    def test_dependency_map_of_wrong_type_rejected(self):
        manifest = parse_manifest_text('{"name": "a", "devDependencies": ["x"]}')
        assert manifest.dev_dependencies == {}
        assert manifest.rejected_keys == ["devDependencies"]

    def test_tolerates_comments(self):
        manifest = parse_manifest_text('{\n// local fork\n"name": "a",\n"version": "2.0.0",\n}')
        assert (manifest.name, manifest.version) == ("a", "2.0.0")


class TestReadManifest:
    def test_reads_file_with_bom(self, tmp_path):
        path = tmp_path / "package.json"
        path.write_bytes("\ufeff{\"name\": \"bom\", \"version\": \"0.1.0\"}".encode("utf-8"))

        manifest = read_manifest(str(path))

        assert manifest.name == "bom"
        assert manifest.version == "0.1.0"

    def test_missing_file_raises_os_error(self, tmp_path):
        with pytest.raises(OSError):
            read_manifest(str(tmp_path / "package.json"))
