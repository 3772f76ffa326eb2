"""
tests/test_cli.py
Tests for the command-line interface: argument handling and exit codes.
"""

from __future__ import annotations

import json
import logging
import pathlib

import pytest
import yaml

from schemagen import __version__
from schemagen.cli import (
    EXIT_EXPORT_ERROR,
    EXIT_GENERATION_ERROR,
    EXIT_INPUT_ERROR,
    EXIT_SUCCESS,
    EXIT_VALIDATION_ERROR,
    cli_main,
    run_cli,
)
from schemagen.exporters import MANIFEST_FILE_NAME


@pytest.fixture(autouse=True)
def _restore_logger():
    """run_cli reconfigures the ``schemagen`` logger; undo it after each test."""
    root = logging.getLogger("schemagen")
    handlers, level, propagate = list(root.handlers), root.level, root.propagate
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    root.propagate = propagate


def _write_schema(path: pathlib.Path, data) -> pathlib.Path:
    path.write_text(yaml.dump(data), encoding="utf-8")
    return path


class TestInputErrors:
    def test_missing_schema_file(self, tmp_path) -> None:
        code = run_cli(["-s", str(tmp_path / "nope.yaml"), "-o", str(tmp_path / "out"), "-q"])
        assert code == EXIT_INPUT_ERROR

    def test_schema_path_is_directory(self, tmp_path) -> None:
        assert run_cli(["-s", str(tmp_path), "-o", str(tmp_path / "out"), "-q"]) == EXIT_INPUT_ERROR

    def test_output_required_for_generation(self, schema_yaml_path) -> None:
        assert run_cli(["-s", str(schema_yaml_path), "-q"]) == EXIT_INPUT_ERROR

    def test_workers_must_be_positive(self, schema_yaml_path, tmp_path) -> None:
        code = run_cli(["-s", str(schema_yaml_path), "-o", str(tmp_path / "out"), "--workers", "0", "-q"])
        assert code == EXIT_INPUT_ERROR

    def test_unknown_layer_is_an_argparse_error(self, schema_yaml_path, capsys) -> None:
        with pytest.raises(SystemExit) as exc_info:
            run_cli(["-s", str(schema_yaml_path), "--layers", "contracts,graphql"])
        assert exc_info.value.code == 2
        assert "unknown layer" in capsys.readouterr().err

    def test_modes_are_mutually_exclusive(self, schema_yaml_path) -> None:
        with pytest.raises(SystemExit):
            run_cli(["-s", str(schema_yaml_path), "--dry-run", "--validate-only"])

    def test_version(self, capsys) -> None:
        with pytest.raises(SystemExit) as exc_info:
            run_cli(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestValidateOnly:
    def test_valid_schema(self, schema_yaml_path, capsys) -> None:
        assert run_cli(["-s", str(schema_yaml_path), "--validate-only", "-q"]) == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "Schema Validation Report" in out
        assert "Models:   6" in out
        assert "All validations passed" in out

    def test_invalid_schema(self, tmp_path, capsys) -> None:
        path = _write_schema(tmp_path / "bad.yaml", {
            "models": [{"name": "Item", "fields": [
                {"name": "id", "type": "Int", "id": True},
                {"name": "owner", "type": "Ghost"},
            ]}],
        })
        assert run_cli(["-s", str(path), "--validate-only", "-q"]) == EXIT_VALIDATION_ERROR
        assert "RELATION_TARGET_UNDEFINED" in capsys.readouterr().out

    def test_unparseable_schema(self, tmp_path) -> None:
        path = _write_schema(tmp_path / "bad.yaml", {"models": []})
        assert run_cli(["-s", str(path), "--validate-only", "-q"]) == EXIT_VALIDATION_ERROR

    def test_warnings_fail_only_when_asked(self, tmp_path) -> None:
        path = _write_schema(tmp_path / "warn.yaml", {
            "models": [{"name": "Note", "fields": [{"name": "text", "type": "String"}]}],
        })
        assert run_cli(["-s", str(path), "--validate-only", "-q"]) == EXIT_SUCCESS
        code = run_cli(["-s", str(path), "--validate-only", "--fail-on-warnings", "-q"])
        assert code == EXIT_VALIDATION_ERROR


class TestGeneration:
    def test_full_generation(self, schema_yaml_path, tmp_path, capsys) -> None:
        out = tmp_path / "out"
        assert run_cli(["-s", str(schema_yaml_path), "-o", str(out), "-q"]) == EXIT_SUCCESS
        assert (out / MANIFEST_FILE_NAME).is_file()
        assert (out / "routes" / "user.py").is_file()
        assert "Generation Report" in capsys.readouterr().out

    def test_overrides_reach_the_config(self, schema_yaml_path, tmp_path) -> None:
        out = tmp_path / "out"
        code = run_cli([
            "-s", str(schema_yaml_path), "-o", str(out), "-q",
            "--layers", "contracts,routes",
            "--target", "flask",
            "--package-name", "shop.api",
            "--order", "topological",
            "--workers", "3",
            "--api-prefix", "/v2",
        ])
        assert code == EXIT_SUCCESS
        manifest = json.loads((out / MANIFEST_FILE_NAME).read_text(encoding="utf-8"))
        assert {lid.split("/")[0] for lid in manifest["path_map"]} == {"contracts", "routes"}
        assert manifest["path_map"]["routes/tag"]["import_specifier"] == "shop.api.routes.tag"
        routes = (out / "routes" / "tag.py").read_text(encoding="utf-8")
        assert 'url_prefix="/v2/tags"' in routes

    def test_dry_run_writes_nothing(self, schema_yaml_path, tmp_path) -> None:
        out = tmp_path / "out"
        assert run_cli(["-s", str(schema_yaml_path), "-o", str(out), "--dry-run", "-q"]) == EXIT_SUCCESS
        assert not out.exists()

    def test_manifest_only(self, schema_yaml_path, tmp_path) -> None:
        out = tmp_path / "out"
        code = run_cli(["-s", str(schema_yaml_path), "-o", str(out), "--manifest-only", "-q"])
        assert code == EXIT_SUCCESS
        assert sorted(p.name for p in out.iterdir()) == [MANIFEST_FILE_NAME]
        manifest = json.loads((out / MANIFEST_FILE_NAME).read_text(encoding="utf-8"))
        assert manifest["tool_version"] == __version__
        assert len(manifest["path_map"]) == 28

    def test_clean_removes_stale_files(self, schema_yaml_path, tmp_path) -> None:
        out = tmp_path / "out"
        out.mkdir()
        (out / "stale.py").write_text("x = 1\n", encoding="utf-8")
        assert run_cli(["-s", str(schema_yaml_path), "-o", str(out), "--clean", "-q"]) == EXIT_SUCCESS
        assert not (out / "stale.py").exists()

    def test_schema_error(self, tmp_path, capsys) -> None:
        path = _write_schema(tmp_path / "bad.yaml", {
            "models": [{"name": "Item", "fields": [
                {"name": "id", "type": "Int", "id": True},
                {"name": "owner", "type": "Ghost"},
            ]}],
        })
        assert run_cli(["-s", str(path), "-o", str(tmp_path / "out"), "-q"]) == EXIT_VALIDATION_ERROR
        assert "RELATION_TARGET_UNDEFINED" in capsys.readouterr().err

    def test_invalid_override(self, schema_yaml_path, tmp_path) -> None:
        code = run_cli(["-s", str(schema_yaml_path), "-o", str(tmp_path / "out"), "--api-prefix", "v2", "-q"])
        assert code == EXIT_VALIDATION_ERROR

    def test_generation_failure(self, tmp_path) -> None:
        path = _write_schema(tmp_path / "clash.yaml", {
            "models": [
                {"name": "BlogPost", "fields": [{"name": "id", "type": "Int", "id": True}]},
                {"name": "Blog_post", "fields": [{"name": "id", "type": "Int", "id": True}]},
            ],
        })
        assert run_cli(["-s", str(path), "-o", str(tmp_path / "out"), "-q"]) == EXIT_GENERATION_ERROR

    def test_export_failure(self, schema_yaml_path, tmp_path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        assert run_cli(["-s", str(schema_yaml_path), "-o", str(blocker), "-q"]) == EXIT_EXPORT_ERROR


class TestEntryPoint:
    def test_cli_main_exits_with_code(self, schema_yaml_path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cli_main(["-s", str(schema_yaml_path), "--validate-only", "-q"])
        assert exc_info.value.code == EXIT_SUCCESS

    def test_verbosity_configures_logger(self, schema_yaml_path) -> None:
        run_cli(["-s", str(schema_yaml_path), "--validate-only", "-vv"])
        root = logging.getLogger("schemagen")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert root.propagate is False
