# File: schemagen/layers.py
"""
schemagen - Layer Generators
==============================
Each layer generator is a callable ``(model, analysis, config) ->
List[ArtifactFile]`` that renders one kind of Python source file for one
model:

    contracts     pydantic V2 DTOs (Base / Create / Update / Read)
    validators    plain-Python payload checks
    services      data-access service over an injected repository
    controllers   HTTP-facing wrapper translating misses into 404s
    routes        FastAPI ``APIRouter`` or Flask ``Blueprint``

Generators only read the shared ``ModelAnalysis``; none of them re-derives
cardinality, special fields or uniqueness on its own.

**Performance contract:**
    - All string assembly uses ``List[str]`` + ``"\\n".join()``.
    - Generators keep no per-model state, so one instance may serve every
      model and every worker thread.

**Determinism contract:** output depends only on the model, its analysis
and the config. Import blocks are sorted and nothing time-dependent is
emitted.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Set, Tuple

from schemagen.models import (
    ALL_LAYERS,
    ArtifactFile,
    FieldDefinition,
    FieldKind,
    GenerationConfig,
    ModelAnalysis,
    ModelDefinition,
    RelationshipType,
    TargetFramework,
)
from schemagen.providers import ProviderRegistry, default_registry
from schemagen.relationships import SYSTEM_FIELD_NAMES
from schemagen.tracker import import_specifier_for
from schemagen.utils import (
    build_import_block,
    count_lines,
    indent_lines,
    merge_import_dicts,
    model_to_route_prefix,
    safe_identifier,
    to_plural,
    to_snake_case,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.layers")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_INDENT: str = "    "

# Scalar type name -> Python annotation used in generated code
_PY_TYPES: Dict[str, str] = {
    "String": "str",
    "Int": "int",
    "BigInt": "int",
    "Float": "float",
    "Decimal": "Decimal",
    "Boolean": "bool",
    "DateTime": "datetime",
    "Json": "Dict[str, Any]",
    "Bytes": "bytes",
}

# Runtime types accepted by the generated validators
_RUNTIME_CHECKS: Dict[str, str] = {
    "String": "(str,)",
    "Int": "(int,)",
    "BigInt": "(int,)",
    "Float": "(int, float)",
    "Decimal": "(int, float, str)",
    "Boolean": "(bool,)",
    "DateTime": "(str, datetime)",
    "Bytes": "(bytes,)",
}

_GENERATED_NOTICE: str = "Auto-generated by schemagen. Do not edit."


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _python_type(f: FieldDefinition) -> str:
    base: str = _PY_TYPES.get(f.type, "str") if f.kind == FieldKind.SCALAR else "str"
    return f"List[{base}]" if f.is_list else base


def _type_imports(fields: Sequence[FieldDefinition]) -> Dict[str, Set[str]]:
    imports: Dict[str, Set[str]] = {"typing": {"Any", "Dict", "List", "Optional"}}
    for f in fields:
        annotation: str = _python_type(f)
        if "datetime" in annotation:
            imports.setdefault("datetime", set()).add("datetime")
        if "Decimal" in annotation:
            imports.setdefault("decimal", set()).add("Decimal")
    return imports


def _header(title: str, imports: Dict[str, Set[str]]) -> List[str]:
    return [
        '"""',
        title,
        _GENERATED_NOTICE,
        '"""',
        "",
        "from __future__ import annotations",
        "",
        build_import_block(imports),
        "",
        "",
    ]


def _module_path(config: GenerationConfig, layer: str, model: ModelDefinition) -> str:
    """Dotted import path of another layer's module for the same model."""
    return import_specifier_for(config.package_name, f"{layer}/{to_snake_case(model.name)}.py")


def _key_params(model: ModelDefinition) -> List[Tuple[str, str, str]]:
    """``(parameter, python type, field name)`` triples identifying one row."""
    id_field: Optional[FieldDefinition] = model.id_field
    if id_field is not None:
        return [(safe_identifier(id_field.name), _python_type(id_field), id_field.name)]

    params: List[Tuple[str, str, str]] = []
    for name in model.primary_key:
        f = model.get_field(name)
        py_type: str = _python_type(f) if f is not None else "Any"
        params.append((safe_identifier(name), py_type, name))
    return params


def _key_signature(params: Sequence[Tuple[str, str, str]]) -> str:
    return ", ".join(f"{p}: {t}" for p, t, _ in params)


def _key_dict(params: Sequence[Tuple[str, str, str]]) -> str:
    return "{" + ", ".join(f'"{n}": {p}' for p, _, n in params) + "}"


def _key_args(params: Sequence[Tuple[str, str, str]]) -> str:
    return ", ".join(p for p, _, _ in params)


def _writable_fields(model: ModelDefinition) -> List[FieldDefinition]:
    """Scalar fields a client may set: no ids, no ``@updatedAt``, no audit columns."""
    return [
        f
        for f in model.scalar_fields
        if not f.is_id
        and not f.is_updated_at
        and f.name.lower() not in SYSTEM_FIELD_NAMES
    ]


def _pydantic_field(f: FieldDefinition, annotation: str, optional: bool) -> str:
    attr: str = safe_identifier(f.name)
    args: List[str] = []
    if optional:
        annotation = f"Optional[{annotation}]"
        args.append("default=None")
    if attr != f.name:
        args.append(f'alias="{f.name}"')
    if not args:
        return f"{attr}: {annotation}"
    if args == ["default=None"]:
        return f"{attr}: {annotation} = None"
    return f"{attr}: {annotation} = Field({', '.join(args)})"


def _foreign_key_of(model: ModelDefinition, analysis: ModelAnalysis, field_name: str) -> str:
    rel = analysis.get_relationship(field_name)
    if rel is not None and rel.foreign_key_fields:
        return rel.foreign_key_fields[0]
    return f"{field_name}Id"


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------


class LayerGenerator:
    """
    Base class for the built-in layer generators.

    Subclasses set ``layer`` and implement ``render``; ``skips`` lets a layer
    opt out for some models (junction tables get no HTTP surface).
    """

    layer: str = ""

    def __call__(
        self,
        model: ModelDefinition,
        analysis: ModelAnalysis,
        config: GenerationConfig,
    ) -> List[ArtifactFile]:
        if self.skips(model, analysis):
            logger.debug("Layer %s skips model '%s'.", self.layer, model.name)
            return []

        content: str = self.render(model, analysis, config)
        logger.debug(
            "Generated %s for '%s': %d lines.",
            self.layer,
            model.name,
            count_lines(content),
        )
        return [ArtifactFile(logical_id=self.logical_id(model), content=content)]

    def logical_id(self, model: ModelDefinition) -> str:
        return f"{self.layer}/{to_snake_case(model.name)}"

    def skips(self, model: ModelDefinition, analysis: ModelAnalysis) -> bool:
        return False

    def render(
        self,
        model: ModelDefinition,
        analysis: ModelAnalysis,
        config: GenerationConfig,
    ) -> str:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} layer={self.layer}>"


# ===========================================================================
# 1. Contracts (pydantic DTOs)
# ===========================================================================


class ContractsLayer(LayerGenerator):
    """
    Pydantic V2 DTOs for one model:
    - {Model}Base     writable fields
    - {Model}Create   POST body
    - {Model}Update   PATCH body, every field optional
    - {Model}Read     response, adds keys and server-managed columns
    """

    layer = "contracts"

    def render(self, model: ModelDefinition, analysis: ModelAnalysis, config: GenerationConfig) -> str:
        name: str = model.name
        writable: List[FieldDefinition] = _writable_fields(model)
        server_side: List[FieldDefinition] = [
            f for f in model.scalar_fields if f not in writable
        ]
        imports = merge_import_dicts(
            {"pydantic": {"BaseModel", "ConfigDict", "Field"}},
            _type_imports(model.scalar_fields),
        )

        lines: List[str] = _header(f"Contracts for model: {name}", imports)

        # --- Base ---
        lines.append(f"class {name}Base(BaseModel):")
        lines.append(f'{_INDENT}"""Fields shared by every {name} contract."""')
        lines.append("")
        lines.append(
            f"{_INDENT}model_config = ConfigDict(from_attributes=True, populate_by_name=True)"
        )
        if writable:
            lines.append("")
        for f in writable:
            optional: bool = not f.is_required or f.has_default_value
            lines.append(_INDENT + _pydantic_field(f, _python_type(f), optional))
        lines.extend(["", ""])

        # --- Create ---
        lines.append(f"class {name}Create({name}Base):")
        lines.append(f'{_INDENT}"""Payload for creating a {name}."""')
        lines.extend(["", ""])

        # --- Update ---
        lines.append(f"class {name}Update(BaseModel):")
        lines.append(f'{_INDENT}"""Partial update; unset fields are left untouched."""')
        lines.append("")
        lines.append(f"{_INDENT}model_config = ConfigDict(populate_by_name=True)")
        if writable:
            lines.append("")
        for f in writable:
            lines.append(_INDENT + _pydantic_field(f, _python_type(f), True))
        lines.extend(["", ""])

        # --- Read ---
        lines.append(f"class {name}Read({name}Base):")
        lines.append(f'{_INDENT}"""{name} as returned by the API."""')
        if server_side:
            lines.append("")
        for f in server_side:
            optional = not f.is_required or f.is_updated_at or f.has_default_value
            lines.append(_INDENT + _pydantic_field(f, _python_type(f), optional and not f.is_id))
        lines.append("")

        return "\n".join(lines)


# ===========================================================================
# 2. Validators
# ===========================================================================


class ValidatorsLayer(LayerGenerator):
    """Dependency-free payload checks used by the controllers."""

    layer = "validators"

    def render(self, model: ModelDefinition, analysis: ModelAnalysis, config: GenerationConfig) -> str:
        snake: str = to_snake_case(model.name)
        writable: List[FieldDefinition] = _writable_fields(model)
        special = analysis.special_fields

        required: List[str] = [
            f.name for f in writable if f.is_required and not f.has_default_value and not f.is_list
        ]
        checks: List[Tuple[str, str]] = [
            (f.name, _RUNTIME_CHECKS[f.type])
            for f in writable
            if f.kind == FieldKind.SCALAR and not f.is_list and f.type in _RUNTIME_CHECKS
        ]
        counters: List[str] = [
            ref.name for ref in (special.views, special.likes) if ref is not None
        ]

        imports: Dict[str, Set[str]] = {"typing": {"Any", "Dict", "List"}}
        if any("datetime" in check for _, check in checks):
            imports["datetime"] = {"datetime"}
        if special.slug is not None:
            imports["re"] = set()

        lines: List[str] = _header(f"Input validators for model: {model.name}", imports)

        if special.slug is not None:
            lines.append('_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")')
            lines.append("")
        lines.append(f"REQUIRED_FIELDS = {tuple(required)!r}")
        lines.append("")
        lines.append("FIELD_TYPES = {")
        for field_name, check in checks:
            lines.append(f'{_INDENT}"{field_name}": {check},')
        lines.append("}")
        if analysis.unique_lookup_fields:
            lines.append("")
            lines.append(f"UNIQUE_FIELDS = {tuple(analysis.unique_lookup_fields)!r}")
        lines.extend(["", ""])

        # --- shared value checks ---
        lines.append("def _check_values(payload: Dict[str, Any]) -> List[str]:")
        lines.append(f"{_INDENT}errors: List[str] = []")
        lines.append(f"{_INDENT}for name, expected in FIELD_TYPES.items():")
        lines.append(f"{_INDENT * 2}value = payload.get(name)")
        lines.append(f"{_INDENT * 2}if value is not None and not isinstance(value, expected):")
        lines.append(f'{_INDENT * 3}errors.append(f"{{name}} has invalid type {{type(value).__name__}}")')
        if special.slug is not None:
            slug: str = special.slug.name
            lines.append(f'{_INDENT}slug = payload.get("{slug}")')
            lines.append(f"{_INDENT}if isinstance(slug, str) and not _SLUG_RE.match(slug):")
            lines.append(
                f"{_INDENT * 2}errors.append(\"{slug} must be lower-case words separated by '-'\")"
            )
        for counter in counters:
            lines.append(f'{_INDENT}if isinstance(payload.get("{counter}"), int) and payload["{counter}"] < 0:')
            lines.append(f'{_INDENT * 2}errors.append("{counter} must not be negative")')
        lines.append(f"{_INDENT}return errors")
        lines.extend(["", ""])

        # --- create ---
        lines.append(f"def validate_{snake}_create(payload: Dict[str, Any]) -> List[str]:")
        lines.append(f'{_INDENT}"""Return a list of problems; empty means the payload is valid."""')
        lines.append(f"{_INDENT}errors: List[str] = [")
        lines.append(f'{_INDENT * 2}f"{{name}} is required" for name in REQUIRED_FIELDS if payload.get(name) is None')
        lines.append(f"{_INDENT}]")
        lines.append(f"{_INDENT}errors.extend(_check_values(payload))")
        lines.append(f"{_INDENT}return errors")
        lines.extend(["", ""])

        # --- update ---
        lines.append(f"def validate_{snake}_update(payload: Dict[str, Any]) -> List[str]:")
        lines.append(f"{_INDENT}return _check_values(payload)")
        lines.append("")

        return "\n".join(lines)


# ===========================================================================
# 3. Services
# ===========================================================================


class ServicesLayer(LayerGenerator):
    """
    Data-access service over an injected repository object.

    Capabilities follow the analysis: unique lookups, soft delete,
    publishing, counters, moderation, tree navigation, relation loaders,
    junction link/unlink, and provider clients declared with
    ``@@service("<provider>", ...)``.

    The repository contract used by generated code::

        create(data) / get(key, include=()) / find_one(filters)
        find_many(filters, skip, limit) / search(text, fields, filters, skip, limit)
        update(key, data) / delete(key)
        increment(key, field, amount) / get_related(key, name)
        list_related(key, name, skip, limit) / delete_where(filters)
    """

    layer = "services"

    def __init__(self, registry: Optional[ProviderRegistry] = None) -> None:
        self._registry: ProviderRegistry = registry or default_registry()

    def render(self, model: ModelDefinition, analysis: ModelAnalysis, config: GenerationConfig) -> str:
        name: str = model.name
        key = _key_params(model)
        special = analysis.special_fields

        imports: Dict[str, Set[str]] = merge_import_dicts(
            {"typing": {"Any", "Dict", "List", "Optional", "Sequence", "Tuple"}},
            _type_imports(model.scalar_fields),
        )
        if special.deleted_at is not None:
            imports = merge_import_dicts(imports, {"datetime": {"datetime", "timezone"}})

        providers: List[Tuple[str, str, Dict[str, object]]] = []
        for annotation in model.get_annotations("service"):
            descriptor = self._registry.require(str(annotation.first_arg))
            imports = merge_import_dicts(imports, descriptor.import_dict())
            providers.append((descriptor.name, descriptor.client_setup, dict(annotation.options)))

        lines: List[str] = _header(f"Service for model: {name}", imports)
        lines.append(f"class {name}Service:")
        lines.append(f'{_INDENT}"""Data access for {name}."""')
        lines.append("")

        relations: Dict[str, str] = {r.field_name: r.kind for r in analysis.relationships}
        lines.append(f"{_INDENT}RELATIONS: Dict[str, str] = {relations!r}")
        lines.append(f"{_INDENT}DEFAULT_INCLUDE: Tuple[str, ...] = {analysis.auto_include!r}")
        filters: Dict[str, str] = {f.name: f.filter_type for f in analysis.filter_fields}
        lines.append(f"{_INDENT}FILTERS: Dict[str, str] = {filters!r}")
        lines.append(f"{_INDENT}SEARCH_FIELDS: Tuple[str, ...] = {analysis.search_fields!r}")
        lines.append("")

        body: List[str] = []
        body.extend(self._constructor(providers))
        body.extend(self._crud(model, analysis, key))
        body.extend(self._unique_lookups(model, analysis))
        body.extend(self._special_methods(analysis, key))
        body.extend(self._foreign_key_methods(model, analysis))
        body.extend(self._relation_methods(model, analysis, key))

        lines.extend(indent_lines(body))
        while lines and not lines[-1]:
            lines.pop()
        lines.append("")
        return "\n".join(lines)

    # -----------------------------------------------------------------
    # Sections (rendered at class-body level, indented by the caller)
    # -----------------------------------------------------------------

    def _constructor(self, providers: Sequence[Tuple[str, str, Dict[str, object]]]) -> List[str]:
        lines: List[str] = [
            "def __init__(self, repository: Any, settings: Optional[Dict[str, Any]] = None) -> None:",
            f"{_INDENT}self._repo = repository",
        ]
        if providers:
            lines.append(f"{_INDENT}settings = settings or {{}}")
        for provider, setup, options in providers:
            attr: str = safe_identifier(provider)
            lines.append(f"{_INDENT}self.{attr}_client = {setup}")
            lines.append(f"{_INDENT}self.{attr}_options: Dict[str, Any] = {options!r}")
        lines.append("")
        return lines

    def _list_filters(self, analysis: ModelAnalysis) -> List[str]:
        lines: List[str] = [
            "query: Dict[str, Any] = dict(filters or {})",
            "unknown = [name for name in query if name not in self.FILTERS]",
            "if unknown:",
            f'{_INDENT}raise ValueError(f"Unknown filters: {{unknown}}")',
        ]
        deleted = analysis.special_fields.deleted_at
        if deleted is not None:
            lines.append(f'query.setdefault("{deleted.name}", None)')
        return lines

    def _crud(
        self,
        model: ModelDefinition,
        analysis: ModelAnalysis,
        key: Sequence[Tuple[str, str, str]],
    ) -> List[str]:
        special = analysis.special_fields
        lines: List[str] = [
            "def create(self, data: Dict[str, Any]) -> Dict[str, Any]:",
            f"{_INDENT}return self._repo.create(data)",
            "",
            "def list(",
            f"{_INDENT}self,",
            f"{_INDENT}filters: Optional[Dict[str, Any]] = None,",
            f"{_INDENT}skip: int = 0,",
            f"{_INDENT}limit: int = 50,",
        ]
        if special.published is not None:
            lines.append(f"{_INDENT}published_only: bool = False,")
        if analysis.search_fields:
            lines.append(f"{_INDENT}search: Optional[str] = None,")
        lines.append(") -> List[Dict[str, Any]]:")
        lines.extend(indent_lines(self._list_filters(analysis)))
        if special.published is not None:
            lines.append(f"{_INDENT}if published_only:")
            lines.append(f'{_INDENT * 2}query["{special.published.name}"] = True')
        if analysis.search_fields:
            lines.append(f"{_INDENT}if search:")
            lines.append(
                f"{_INDENT * 2}return self._repo.search(search, self.SEARCH_FIELDS, query, skip=skip, limit=limit)"
            )
        lines.append(f"{_INDENT}return self._repo.find_many(query, skip=skip, limit=limit)")
        lines.append("")

        if not key:
            lines.append(f"# {model.name} has no id field; lookups by key are not generated.")
            lines.append("")
            return lines

        sig: str = _key_signature(key)
        key_dict: str = _key_dict(key)
        lines.extend([
            f"def get(self, {sig}, include: Optional[Sequence[str]] = None) -> Optional[Dict[str, Any]]:",
            f"{_INDENT}names = self.DEFAULT_INCLUDE if include is None else tuple(include)",
            f"{_INDENT}unknown = [name for name in names if name not in self.RELATIONS]",
            f"{_INDENT}if unknown:",
            f'{_INDENT * 2}raise ValueError(f"Unknown relations: {{unknown}}")',
            f"{_INDENT}return self._repo.get({key_dict}, include=names)",
            "",
            f"def update(self, {sig}, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:",
            f"{_INDENT}return self._repo.update({key_dict}, data)",
            "",
        ])

        deleted = special.deleted_at
        if deleted is not None:
            lines.extend([
                f"def delete(self, {sig}) -> bool:",
                f'{_INDENT}"""Soft delete: stamps {deleted.name} instead of removing the row."""',
                f"{_INDENT}updated = self._repo.update(",
                f'{_INDENT * 2}{key_dict}, {{"{deleted.name}": datetime.now(timezone.utc)}}',
                f"{_INDENT})",
                f"{_INDENT}return updated is not None",
                "",
                f"def restore(self, {sig}) -> Optional[Dict[str, Any]]:",
                f'{_INDENT}return self._repo.update({key_dict}, {{"{deleted.name}": None}})',
                "",
                f"def hard_delete(self, {sig}) -> bool:",
                f"{_INDENT}return self._repo.delete({key_dict})",
                "",
            ])
        else:
            lines.extend([
                f"def delete(self, {sig}) -> bool:",
                f"{_INDENT}return self._repo.delete({key_dict})",
                "",
            ])
        return lines

    def _unique_lookups(self, model: ModelDefinition, analysis: ModelAnalysis) -> List[str]:
        lines: List[str] = []
        for field_name in analysis.unique_lookup_fields:
            f = model.get_field(field_name)
            param: str = safe_identifier(field_name)
            py_type: str = _python_type(f) if f is not None else "Any"
            lines.extend([
                f"def get_by_{param.rstrip('_')}(self, {param}: {py_type}) -> Optional[Dict[str, Any]]:",
                f'{_INDENT}return self._repo.find_one({{"{field_name}": {param}}})',
                "",
            ])
        for field_name in analysis.composite_unique_conflicts:
            lines.append(
                f"# {field_name} is unique only together with other fields; "
                f"no single-field lookup."
            )
            lines.append("")
        return lines

    def _special_methods(
        self, analysis: ModelAnalysis, key: Sequence[Tuple[str, str, str]]
    ) -> List[str]:
        special = analysis.special_fields
        lines: List[str] = []
        if not key:
            return lines
        sig: str = _key_signature(key)
        key_dict: str = _key_dict(key)

        if special.published is not None:
            flag: str = special.published.name
            lines.extend([
                f"def publish(self, {sig}) -> Optional[Dict[str, Any]]:",
                f'{_INDENT}return self._repo.update({key_dict}, {{"{flag}": True}})',
                "",
                f"def unpublish(self, {sig}) -> Optional[Dict[str, Any]]:",
                f'{_INDENT}return self._repo.update({key_dict}, {{"{flag}": False}})',
                "",
            ])

        for ref in (special.views, special.likes):
            if ref is None:
                continue
            lines.extend([
                f"def increment_{safe_identifier(ref.name)}(self, {sig}, amount: int = 1) -> Optional[Dict[str, Any]]:",
                f'{_INDENT}return self._repo.increment({key_dict}, "{ref.name}", amount)',
                "",
            ])

        if special.approved is not None:
            flag = special.approved.name
            lines.extend([
                f"def approve(self, {sig}) -> Optional[Dict[str, Any]]:",
                f'{_INDENT}return self._repo.update({key_dict}, {{"{flag}": True}})',
                "",
                "def list_pending(self, skip: int = 0, limit: int = 50) -> List[Dict[str, Any]]:",
                f'{_INDENT}return self._repo.find_many({{"{flag}": False}}, skip=skip, limit=limit)',
                "",
            ])

        if special.parent_id is not None:
            parent: str = special.parent_id.name
            lines.extend([
                f"def get_children(self, {safe_identifier(parent)}: {_python_type(special.parent_id)}) -> List[Dict[str, Any]]:",
                f'{_INDENT}return self._repo.find_many({{"{parent}": {safe_identifier(parent)}}}, skip=0, limit=None)',
                "",
                "def get_roots(self) -> List[Dict[str, Any]]:",
                f'{_INDENT}return self._repo.find_many({{"{parent}": None}}, skip=0, limit=None)',
                "",
            ])
        return lines

    def _foreign_key_methods(self, model: ModelDefinition, analysis: ModelAnalysis) -> List[str]:
        lines: List[str] = []
        for fk in analysis.foreign_keys:
            params: List[Tuple[str, str, str]] = []
            for column in fk.field_names:
                f = model.get_field(column)
                params.append((safe_identifier(column), _python_type(f) if f is not None else "Any", column))
            lines.extend([
                f"def list_by_{safe_identifier(fk.relation_alias).rstrip('_')}(",
                f"{_INDENT}self, {_key_signature(params)}, skip: int = 0, limit: int = 50",
                ") -> List[Dict[str, Any]]:",
                f"{_INDENT}return self._repo.find_many({_key_dict(params)}, skip=skip, limit=limit)",
                "",
            ])
        return lines

    def _relation_methods(
        self,
        model: ModelDefinition,
        analysis: ModelAnalysis,
        key: Sequence[Tuple[str, str, str]],
    ) -> List[str]:
        lines: List[str] = []

        if analysis.is_junction_table:
            first, second = model.relation_fields
            a_fk: str = _foreign_key_of(model, analysis, first.name)
            b_fk: str = _foreign_key_of(model, analysis, second.name)
            a_param, b_param = safe_identifier(a_fk), safe_identifier(b_fk)
            pair: str = f'{{"{a_fk}": {a_param}, "{b_fk}": {b_param}}}'
            lines.extend([
                f"def link(self, {a_param}: Any, {b_param}: Any) -> Dict[str, Any]:",
                f"{_INDENT}return self._repo.create({pair})",
                "",
                f"def unlink(self, {a_param}: Any, {b_param}: Any) -> int:",
                f"{_INDENT}return self._repo.delete_where({pair})",
                "",
            ])

        if not key:
            return lines
        sig: str = _key_signature(key)
        key_dict: str = _key_dict(key)

        for rel in analysis.relationships:
            attr: str = safe_identifier(rel.field_name)
            if rel.kind in (RelationshipType.ONE_TO_MANY, RelationshipType.MANY_TO_MANY):
                lines.extend([
                    f"def list_{attr}(self, {sig}, skip: int = 0, limit: int = 50) -> List[Dict[str, Any]]:",
                    f'{_INDENT}return self._repo.list_related({key_dict}, "{rel.field_name}", skip=skip, limit=limit)',
                    "",
                ])
            else:
                lines.extend([
                    f"def get_{attr}(self, {sig}) -> Optional[Dict[str, Any]]:",
                    f'{_INDENT}return self._repo.get_related({key_dict}, "{rel.field_name}")',
                    "",
                ])
        return lines


# ===========================================================================
# 4. Controllers
# ===========================================================================


class ControllersLayer(LayerGenerator):
    """Framework-aware wrapper: validation errors → 422, misses → 404."""

    layer = "controllers"

    def skips(self, model: ModelDefinition, analysis: ModelAnalysis) -> bool:
        return analysis.is_junction_table

    def render(self, model: ModelDefinition, analysis: ModelAnalysis, config: GenerationConfig) -> str:
        name: str = model.name
        snake: str = to_snake_case(model.name)
        key = _key_params(model)
        flask: bool = config.target == TargetFramework.FLASK

        imports: Dict[str, Set[str]] = merge_import_dicts(
            {"typing": {"List"}},
            _type_imports(model.scalar_fields),
            {
                _module_path(config, "contracts", model): {
                    f"{name}Create", f"{name}Read", f"{name}Update",
                },
                _module_path(config, "services", model): {f"{name}Service"},
                _module_path(config, "validators", model): {
                    f"validate_{snake}_create", f"validate_{snake}_update",
                },
            },
        )
        imports = merge_import_dicts(imports, {"flask": {"abort"}} if flask else {"fastapi": {"HTTPException"}})

        def fail(status: int, detail: str) -> str:
            if flask:
                return f"abort({status}, description={detail})"
            return f"raise HTTPException(status_code={status}, detail={detail})"

        lines: List[str] = _header(f"Controller for model: {name}", imports)
        lines.append(f"class {name}Controller:")
        lines.append(f"{_INDENT}def __init__(self, service: {name}Service) -> None:")
        lines.append(f"{_INDENT * 2}self._service = service")
        lines.append("")

        body: List[str] = [
            f"def create(self, payload: {name}Create) -> {name}Read:",
            f"{_INDENT}data = payload.model_dump(by_alias=True, exclude_unset=True)",
            f"{_INDENT}errors = validate_{snake}_create(data)",
            f"{_INDENT}if errors:",
            f"{_INDENT * 2}{fail(422, 'errors')}",
            f"{_INDENT}return {name}Read.model_validate(self._service.create(data))",
            "",
            f"def list(self, skip: int = 0, limit: int = 50) -> List[{name}Read]:",
            f"{_INDENT}return [{name}Read.model_validate(row) for row in self._service.list(skip=skip, limit=limit)]",
            "",
        ]

        if key:
            sig: str = _key_signature(key)
            args: str = _key_args(key)
            not_found: str = fail(404, f'"{name} not found."')
            body.extend([
                f"def get(self, {sig}) -> {name}Read:",
                f"{_INDENT}row = self._service.get({args})",
                f"{_INDENT}if row is None:",
                f"{_INDENT * 2}{not_found}",
                f"{_INDENT}return {name}Read.model_validate(row)",
                "",
                f"def update(self, {sig}, payload: {name}Update) -> {name}Read:",
                f"{_INDENT}data = payload.model_dump(by_alias=True, exclude_unset=True)",
                f"{_INDENT}errors = validate_{snake}_update(data)",
                f"{_INDENT}if errors:",
                f"{_INDENT * 2}{fail(422, 'errors')}",
                f"{_INDENT}row = self._service.update({args}, data)",
                f"{_INDENT}if row is None:",
                f"{_INDENT * 2}{not_found}",
                f"{_INDENT}return {name}Read.model_validate(row)",
                "",
                f"def delete(self, {sig}) -> None:",
                f"{_INDENT}if not self._service.delete({args}):",
                f"{_INDENT * 2}{not_found}",
                "",
            ])

        for field_name in analysis.unique_lookup_fields:
            f = model.get_field(field_name)
            param: str = safe_identifier(field_name)
            method: str = f"get_by_{param.rstrip('_')}"
            py_type: str = _python_type(f) if f is not None else "Any"
            body.extend([
                f"def {method}(self, {param}: {py_type}) -> {name}Read:",
                f"{_INDENT}row = self._service.{method}({param})",
                f"{_INDENT}if row is None:",
                f"{_INDENT * 2}{fail(404, repr(f'{name} not found.'))}",
                f"{_INDENT}return {name}Read.model_validate(row)",
                "",
            ])

        lines.extend(indent_lines(body))
        while lines and not lines[-1]:
            lines.pop()
        lines.append("")
        return "\n".join(lines)


# ===========================================================================
# 5. Routes
# ===========================================================================


class RoutesLayer(LayerGenerator):
    """FastAPI ``APIRouter`` or Flask ``Blueprint`` bound to the controller."""

    layer = "routes"

    def skips(self, model: ModelDefinition, analysis: ModelAnalysis) -> bool:
        return analysis.is_junction_table

    def render(self, model: ModelDefinition, analysis: ModelAnalysis, config: GenerationConfig) -> str:
        if config.target == TargetFramework.FLASK:
            return self._render_flask(model, analysis, config)
        return self._render_fastapi(model, analysis, config)

    def _prefix(self, model: ModelDefinition, config: GenerationConfig) -> str:
        base: str = "" if config.api_prefix == "/" else config.api_prefix
        return f"{base}{model_to_route_prefix(model.name)}"

    def _render_fastapi(
        self, model: ModelDefinition, analysis: ModelAnalysis, config: GenerationConfig
    ) -> str:
        name: str = model.name
        snake: str = to_snake_case(model.name)
        key = _key_params(model)
        dep: str = f"get_{snake}_controller"

        imports: Dict[str, Set[str]] = merge_import_dicts(
            {"typing": {"List"}, "fastapi": {"APIRouter", "Depends"}},
            _type_imports(model.scalar_fields),
            {
                _module_path(config, "contracts", model): {
                    f"{name}Create", f"{name}Read", f"{name}Update",
                },
                _module_path(config, "controllers", model): {f"{name}Controller"},
            },
        )

        lines: List[str] = _header(f"Routes for model: {name}", imports)
        lines.append(
            f'router = APIRouter(prefix="{self._prefix(model, config)}", tags=["{name}"])'
        )
        lines.extend(["", ""])
        lines.append(f"def {dep}() -> {name}Controller:")
        lines.append(f'{_INDENT}"""Bind with ``app.dependency_overrides[{dep}]``."""')
        lines.append(f'{_INDENT}raise NotImplementedError("{dep} is not configured.")')
        lines.extend(["", ""])

        ctrl: str = f"controller: {name}Controller = Depends({dep})"
        plural: str = safe_identifier(to_plural(snake))

        lines.extend([
            f'@router.post("/", response_model={name}Read, status_code=201)',
            f"def create_{snake}(payload: {name}Create, {ctrl}) -> {name}Read:",
            f"{_INDENT}return controller.create(payload)",
            "",
            "",
            f'@router.get("/", response_model=List[{name}Read])',
            f"def list_{plural}(skip: int = 0, limit: int = 50, {ctrl}) -> List[{name}Read]:",
            f"{_INDENT}return controller.list(skip=skip, limit=limit)",
            "",
            "",
        ])

        for field_name in analysis.unique_lookup_fields:
            f = model.get_field(field_name)
            param: str = safe_identifier(field_name)
            method: str = f"get_by_{param.rstrip('_')}"
            py_type: str = _python_type(f) if f is not None else "Any"
            lines.extend([
                f'@router.get("/by-{param.rstrip("_").replace("_", "-")}/{{{param}}}", response_model={name}Read)',
                f"def {method}_{snake}({param}: {py_type}, {ctrl}) -> {name}Read:",
                f"{_INDENT}return controller.{method}({param})",
                "",
                "",
            ])

        if key:
            path: str = "/" + "/".join(f"{{{p}}}" for p, _, _ in key)
            sig: str = _key_signature(key)
            args: str = _key_args(key)
            lines.extend([
                f'@router.get("{path}", response_model={name}Read)',
                f"def get_{snake}({sig}, {ctrl}) -> {name}Read:",
                f"{_INDENT}return controller.get({args})",
                "",
                "",
                f'@router.patch("{path}", response_model={name}Read)',
                f"def update_{snake}({sig}, payload: {name}Update, {ctrl}) -> {name}Read:",
                f"{_INDENT}return controller.update({args}, payload)",
                "",
                "",
                f'@router.delete("{path}", status_code=204)',
                f"def delete_{snake}({sig}, {ctrl}) -> None:",
                f"{_INDENT}controller.delete({args})",
                "",
                "",
            ])

        while lines and not lines[-1]:
            lines.pop()
        lines.append("")
        return "\n".join(lines)

    def _render_flask(
        self, model: ModelDefinition, analysis: ModelAnalysis, config: GenerationConfig
    ) -> str:
        name: str = model.name
        snake: str = to_snake_case(model.name)
        key = _key_params(model)

        imports: Dict[str, Set[str]] = merge_import_dicts(
            {"typing": {"Any"}, "flask": {"Blueprint", "jsonify", "request"}},
            {
                _module_path(config, "contracts", model): {f"{name}Create", f"{name}Update"},
                _module_path(config, "controllers", model): {f"{name}Controller"},
            },
        )

        lines: List[str] = _header(f"Routes for model: {name}", imports)
        lines.append(f"def create_{snake}_blueprint(controller: {name}Controller) -> Blueprint:")
        lines.append(
            f'{_INDENT}bp = Blueprint("{snake}", __name__, url_prefix="{self._prefix(model, config)}")'
        )
        lines.append("")

        body: List[str] = [
            '@bp.post("/")',
            f"def create_{snake}() -> Any:",
            f"{_INDENT}payload = {name}Create.model_validate(request.get_json(force=True))",
            f"{_INDENT}return jsonify(controller.create(payload).model_dump(by_alias=True)), 201",
            "",
            '@bp.get("/")',
            f"def list_{safe_identifier(to_plural(snake))}() -> Any:",
            f'{_INDENT}skip = request.args.get("skip", 0, type=int)',
            f'{_INDENT}limit = request.args.get("limit", 50, type=int)',
            f"{_INDENT}rows = controller.list(skip=skip, limit=limit)",
            f"{_INDENT}return jsonify([row.model_dump(by_alias=True) for row in rows])",
            "",
        ]

        if key:
            converters: Dict[str, str] = {"int": "int", "float": "float"}
            path: str = "/" + "/".join(
                f"<{converters[t]}:{p}>" if t in converters else f"<{p}>" for p, t, _ in key
            )
            params: str = ", ".join(p for p, _, _ in key)
            body.extend([
                f'@bp.get("{path}")',
                f"def get_{snake}({params}) -> Any:",
                f"{_INDENT}return jsonify(controller.get({params}).model_dump(by_alias=True))",
                "",
                f'@bp.patch("{path}")',
                f"def update_{snake}({params}) -> Any:",
                f"{_INDENT}payload = {name}Update.model_validate(request.get_json(force=True))",
                f"{_INDENT}return jsonify(controller.update({params}, payload).model_dump(by_alias=True))",
                "",
                f'@bp.delete("{path}")',
                f"def delete_{snake}({params}) -> Any:",
                f"{_INDENT}controller.delete({params})",
                f'{_INDENT}return "", 204',
                "",
            ])

        body.append("return bp")
        lines.extend(indent_lines(body))
        lines.append("")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Registry of built-in layers
# ---------------------------------------------------------------------------

_LAYER_CLASSES: Dict[str, type] = {
    "contracts": ContractsLayer,
    "validators": ValidatorsLayer,
    "services": ServicesLayer,
    "controllers": ControllersLayer,
    "routes": RoutesLayer,
}


def default_layers(
    config: GenerationConfig,
    registry: Optional[ProviderRegistry] = None,
) -> List[LayerGenerator]:
    """
    Instantiate the built-in generators enabled in ``config.layers``, in
    the canonical ``ALL_LAYERS`` order.
    """
    enabled: Set[str] = set(config.layers)
    generators: List[LayerGenerator] = []
    for layer_name in ALL_LAYERS:
        if layer_name not in enabled:
            continue
        cls = _LAYER_CLASSES[layer_name]
        generators.append(cls(registry) if cls is ServicesLayer else cls())
    logger.debug("Enabled layers: %s", [g.layer for g in generators])
    return generators


__all__: List[str] = [
    "LayerGenerator",
    "ContractsLayer",
    "ValidatorsLayer",
    "ServicesLayer",
    "ControllersLayer",
    "RoutesLayer",
    "default_layers",
]

logger.debug("schemagen.layers loaded — %d public symbols.", len(__all__))
