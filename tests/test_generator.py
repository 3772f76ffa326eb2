"""
tests/test_generator.py
Tests for the orchestrator: analysis barrier, shared analysis instances,
failure isolation, path conflicts, ordering, determinism and export.
"""

from __future__ import annotations

import json
import pathlib
from typing import Any, Dict, List

import pytest

from schemagen.cache import AnalysisCache
from schemagen.errors import RelationshipAmbiguityWarning, SchemaError
from schemagen.exporters import MANIFEST_FILE_NAME
from schemagen.generator import Failure, Orchestrator, RunResult, layer_name, run
from schemagen.layers import ServicesLayer, default_layers
from schemagen.models import ArtifactFile


def _id() -> Dict[str, Any]:
    return {"name": "id", "type": "Int", "id": True, "default": "autoincrement"}


def _stub_layer(name: str):
    """A layer callable emitting one tiny artifact per model."""

    def generate(model, analysis, config) -> List[ArtifactFile]:
        return [ArtifactFile(logical_id=f"{name}/{model.name}", content=f"# {model.name}\n")]

    generate.__name__ = name
    return generate


AMBIGUOUS_MODELS: List[Dict[str, Any]] = [
    {
        "name": "User",
        "fields": [
            _id(),
            {"name": "written", "type": "Post", "list": True},
            {"name": "edited", "type": "Post", "list": True},
        ],
    },
    {
        "name": "Post",
        "fields": [
            _id(),
            {"name": "writer", "type": "User", "relation": {"fields": ["writerId"], "references": ["id"]}},
            {"name": "writerId", "type": "Int"},
            {"name": "editor", "type": "User", "relation": {"fields": ["editorId"], "references": ["id"]}},
            {"name": "editorId", "type": "Int"},
        ],
    },
]


# ---------------------------------------------------------------------------
# Full run over the reference schema
# ---------------------------------------------------------------------------


class TestReferenceRun:
    def test_run_succeeds(self, example) -> None:
        schema, config = example
        result = Orchestrator().run(schema, default_layers(config), config)

        assert result.success, result.summary()
        assert result.failures == []
        assert result.warnings == []
        assert result.validation_warnings == []
        assert result.models_processed == 6

    def test_junction_has_no_http_surface(self, example) -> None:
        schema, config = example
        result = Orchestrator().run(schema, default_layers(config), config)

        ids = set(result.artifact_ids)
        assert "services/post_tag" in ids
        assert "contracts/post_tag" in ids
        assert "controllers/post_tag" not in ids
        assert "routes/post_tag" not in ids
        # 6 models x 5 layers, minus controllers and routes for the junction
        assert len(ids) == 28

    def test_manifest_matches_artifacts(self, example, tmp_path) -> None:
        schema, config = example
        result = Orchestrator().run(schema, default_layers(config), config)

        manifest = result.manifest
        assert manifest is not None
        assert sorted(manifest.path_map) == sorted(result.artifact_ids)
        assert manifest.failed_artifacts == ()
        entry = manifest.path_map["services/post"]
        assert entry.import_specifier == "app.services.post"
        assert entry.absolute_path == (tmp_path / "out" / "services" / "post.py").resolve().as_posix()

    def test_declaration_order(self, example) -> None:
        schema, config = example
        result = Orchestrator().run(schema, default_layers(config), config)
        contracts = [lid for lid in result.artifact_ids if lid.startswith("contracts/")]
        assert contracts == [
            "contracts/user",
            "contracts/profile",
            "contracts/post",
            "contracts/tag",
            "contracts/post_tag",
            "contracts/comment",
        ]

    def test_topological_order(self, example) -> None:
        schema, config = example
        config.order = "topological"
        result = Orchestrator().run(schema, default_layers(config), config)
        contracts = [lid for lid in result.artifact_ids if lid.startswith("contracts/")]
        assert contracts == [
            "contracts/user",
            "contracts/tag",
            "contracts/profile",
            "contracts/post",
            "contracts/post_tag",
            "contracts/comment",
        ]

    def test_two_runs_are_identical(self, example) -> None:
        schema, config = example
        first = Orchestrator().run(schema, default_layers(config), config)
        second = Orchestrator().run(schema, default_layers(config), config)

        assert first.manifest.to_dict(include_timestamp=False) == second.manifest.to_dict(
            include_timestamp=False
        )
        assert [a.content for a in first.artifacts] == [a.content for a in second.artifacts]

    def test_parallel_matches_sequential(self, example) -> None:
        schema, config = example
        sequential = Orchestrator().run(schema, default_layers(config), config)
        config.workers = 4
        parallel = Orchestrator().run(schema, default_layers(config), config)

        assert parallel.artifact_ids == sequential.artifact_ids
        assert parallel.manifest.to_dict(include_timestamp=False) == sequential.manifest.to_dict(
            include_timestamp=False
        )

    def test_summary_text(self, example) -> None:
        schema, config = example
        result = Orchestrator().run(schema, default_layers(config), config)
        text = result.summary()
        assert "Generation Report: SUCCESS" in text
        assert "[  ok] Analyze Relationships" in text
        assert "Code Generation" in text

    def test_module_level_run(self, example) -> None:
        schema, config = example
        result = run(schema, [_stub_layer("stub")], config)
        assert isinstance(result, RunResult)
        assert result.artifact_ids == [f"stub/{m.name}" for m in schema.models]


# ---------------------------------------------------------------------------
# Analysis sharing and the Phase-1 barrier
# ---------------------------------------------------------------------------


class TestAnalysisSharing:
    def test_every_layer_sees_the_same_instance(self, example) -> None:
        schema, config = example
        seen: Dict[str, List[int]] = {}

        def record(model, analysis, config) -> List[ArtifactFile]:
            seen.setdefault(model.name, []).append(id(analysis))
            return []

        cache = AnalysisCache()
        Orchestrator().run(schema, [record, record, record], config, cache=cache)

        for model in schema.models:
            ids = seen[model.name]
            assert len(ids) == 3
            assert len(set(ids)) == 1, f"{model.name} got different analysis objects"
            assert ids[0] == id(cache.try_get(model.name))

    def test_analyzed_once_per_model(self, example) -> None:
        schema, config = example
        cache = AnalysisCache()
        Orchestrator().run(schema, default_layers(config), config, cache=cache)
        for model in schema.models:
            assert cache.computation_count(model.name) == 1

    def test_all_models_analyzed_before_first_generation(self, example) -> None:
        schema, config = example
        cache = AnalysisCache()
        observed: List[bool] = []

        def check_barrier(model, analysis, config) -> List[ArtifactFile]:
            observed.append(all(cache.has(m.name) for m in schema.models))
            return []

        Orchestrator().run(schema, [check_barrier], config, cache=cache)
        assert observed and all(observed)


# ---------------------------------------------------------------------------
# Failure isolation
# ---------------------------------------------------------------------------


class TestFailures:
    def test_layer_exception_is_isolated(self, example) -> None:
        schema, config = example

        def flaky(model, analysis, config) -> List[ArtifactFile]:
            if model.name == "Tag":
                raise RuntimeError("boom")
            return [ArtifactFile(logical_id=f"flaky/{model.name}", content="x = 1\n")]

        result = Orchestrator().run(schema, [flaky, _stub_layer("ok")], config)

        assert not result.success
        assert len(result.failures) == 1
        failure = result.failures[0]
        assert isinstance(failure, Failure)
        assert (failure.model, failure.layer, failure.error_type) == ("Tag", "flaky", "RuntimeError")
        assert failure.cause == "boom"
        assert "flaky/Tag" not in result.artifact_ids
        assert "ok/Tag" in result.artifact_ids
        assert len(result.artifacts) == 2 * len(schema.models) - 1
        assert "Failures (1)" in result.summary()

    def test_non_artifact_return_is_a_failure(self, example) -> None:
        schema, config = example

        def wrong(model, analysis, config):
            return ["not an artifact"]

        result = Orchestrator().run(schema, [wrong], config)
        assert len(result.failures) == len(schema.models)
        assert {f.error_type for f in result.failures} == {"TypeError"}
        assert result.artifacts == []

    def test_path_conflict_recorded_in_manifest(self, make_schema, user_post_models) -> None:
        schema, config = make_schema(user_post_models)

        def clash(model, analysis, config) -> List[ArtifactFile]:
            return [ArtifactFile(logical_id=f"dup/{model.name}", content="", relative_path="dup.py")]

        result = Orchestrator().run(schema, [clash], config)

        assert result.artifact_ids == ["dup/User"]
        assert result.manifest.failed_artifacts == ("dup/Post",)
        assert len(result.failures) == 1
        assert result.failures[0].error_type == "PathConflictError"
        assert result.failures[0].logical_id == "dup/Post"

    def test_colliding_model_names_keep_first_artifact(self, make_schema) -> None:
        schema, config = make_schema([
            {"name": "BlogPost", "fields": [_id()]},
            {"name": "Blog_post", "fields": [_id()]},
        ])
        result = Orchestrator().run(schema, [ServicesLayer()], config)

        assert result.artifact_ids == ["services/blog_post"]
        assert "class BlogPostService" in result.artifacts[0].content
        assert [(f.model, f.error_type) for f in result.failures] == [("Blog_post", "PathConflictError")]
        assert result.manifest.failed_artifacts == ("services/blog_post",)
        assert list(result.manifest.path_map) == ["services/blog_post"]

    def test_shared_id_with_different_paths_fails_in_manifest(self, make_schema, user_post_models) -> None:
        schema, config = make_schema(user_post_models)

        def shared(model, analysis, config) -> List[ArtifactFile]:
            return [ArtifactFile(logical_id="shared", content="", relative_path=f"{model.name}.py")]

        result = Orchestrator().run(schema, [shared], config)

        assert result.artifact_ids == ["shared"]
        assert result.manifest.failed_artifacts == ("shared",)
        assert result.manifest.path_map["shared"].absolute_path.endswith("/User.py")
        assert [(f.model, f.logical_id) for f in result.failures] == [("Post", "shared")]

    def test_auto_include_setting_reaches_analysis(self, example) -> None:
        schema, config = example
        seen: Dict[str, Any] = {}

        def capture(model, analysis, config) -> List[ArtifactFile]:
            seen[model.name] = analysis.auto_include
            return []

        Orchestrator().run(schema, [capture], config)
        assert seen["Comment"] == ("post", "parent")

        config.auto_include_required_only = True
        Orchestrator().run(schema, [capture], config)
        assert seen["Comment"] == ("post",)

    def test_layer_name_resolution(self) -> None:
        assert layer_name(_stub_layer("custom")) == "custom"

        class Named:
            layer = "named"

            def __call__(self, model, analysis, config):
                return []

        assert layer_name(Named()) == "named"


# ---------------------------------------------------------------------------
# Fatal schema errors and warnings
# ---------------------------------------------------------------------------


class TestSchemaErrors:
    def test_undefined_target_aborts_before_generation(self, make_schema) -> None:
        schema, config = make_schema([
            {"name": "Post", "fields": [_id(), {"name": "owner", "type": "Ghost"}]},
        ])
        calls: List[str] = []

        def record(model, analysis, config) -> List[ArtifactFile]:
            calls.append(model.name)
            return []

        with pytest.raises(SchemaError) as exc_info:
            Orchestrator().run(schema, [record], config)
        assert calls == []
        assert any("RELATION_TARGET_UNDEFINED" in issue for issue in exc_info.value.issues)

    def test_undefined_target_without_validation(self, make_schema) -> None:
        schema, config = make_schema([
            {"name": "Post", "fields": [_id(), {"name": "owner", "type": "Ghost"}]},
        ])
        with pytest.raises(SchemaError):
            Orchestrator(validate=False).run(schema, [_stub_layer("stub")], config)

    def test_ambiguity_is_a_warning_by_default(self, make_schema) -> None:
        schema, config = make_schema(AMBIGUOUS_MODELS)
        result = Orchestrator().run(schema, [_stub_layer("stub")], config)

        assert result.success
        assert len(result.warnings) == 4
        assert all(isinstance(w, RelationshipAmbiguityWarning) for w in result.warnings)
        assert "Relationship Warnings (4)" in result.summary()

    def test_fail_on_warnings_makes_ambiguity_fatal(self, make_schema) -> None:
        schema, config = make_schema(AMBIGUOUS_MODELS, fail_on_warnings=True)
        with pytest.raises(SchemaError, match="relationship warning"):
            Orchestrator(validate=False).run(schema, [_stub_layer("stub")], config)

    def test_fail_on_warnings_makes_validation_warnings_fatal(self, make_schema) -> None:
        schema, config = make_schema(
            [{"name": "Note", "fields": [{"name": "text", "type": "String"}]}],
            fail_on_warnings=True,
        )
        with pytest.raises(SchemaError, match="validation warning"):
            Orchestrator().run(schema, [_stub_layer("stub")], config)


# ---------------------------------------------------------------------------
# File-based pipeline
# ---------------------------------------------------------------------------


class TestGenerateFromFile:
    def test_writes_artifacts_and_manifest(self, schema_yaml_path, tmp_path) -> None:
        out: pathlib.Path = tmp_path / "generated"
        result = Orchestrator().generate_from_file(schema_yaml_path, out)

        assert result.success, result.summary()
        assert result.export is not None and result.export.success
        manifest_file = out / MANIFEST_FILE_NAME
        assert manifest_file.is_file()

        data = json.loads(manifest_file.read_text(encoding="utf-8"))
        assert sorted(data["path_map"]) == sorted(result.artifact_ids)
        for entry in data["path_map"].values():
            assert pathlib.Path(entry["absolute_path"]).is_file()
        assert (out / "__init__.py").is_file()
        assert (out / "services" / "__init__.py").is_file()

    def test_write_false_touches_nothing(self, schema_yaml_path, tmp_path) -> None:
        out: pathlib.Path = tmp_path / "dry"
        result = Orchestrator().generate_from_file(schema_yaml_path, out, write=False)

        assert result.success
        assert result.export is None
        assert len(result.artifacts) == 28
        assert not out.exists()

    def test_config_overrides_and_custom_layers(self, schema_yaml_path, tmp_path) -> None:
        result = Orchestrator().generate_from_file(
            schema_yaml_path,
            tmp_path / "custom",
            config_overrides={"package_name": "blog.api"},
            layer_generators=[_stub_layer("stub")],
            write=False,
        )
        assert result.manifest.path_map["stub/User"].import_specifier == "blog.api.stub.User"

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            Orchestrator().generate_from_file(tmp_path / "nope.yaml", tmp_path / "out")
