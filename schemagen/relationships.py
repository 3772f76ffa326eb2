# File: schemagen/relationships.py
"""
schemagen - Relationship Analyzer
===================================
Pure functions over one model plus the full schema:

    analyze()                         cardinality of every relation field
    is_junction_table()               pure per-model shape check
    detect_special_fields()           slug / published / views / ... by name+type
    analyze_fields()                  search and filter fields in one pass
    foreign_keys()                    FK columns owned by each relation field
    find_composite_unique_conflicts() "looks unique" fields inside @@unique([a, b])
    unique_lookup_fields()            fields safe for single-row lookup
    analyze_model()                   all of the above as one ``ModelAnalysis``
    topological_order()               dependency-first model ordering

Classification from the declaring model's side (f = field, b = back-reference):

    f list,  b list       -> many_to_many
    f list,  b single/none-> one_to_many
    f single, b exists    -> many_to_one   (one_to_one when both sides are
                                            single and the owning FK is unique)
    f single, no b        -> one_to_one    (FK-only)

A composite foreign key (two or more columns) is never one_to_one unless those
exact columns form an explicit multi-field unique constraint.

Complexity: every back-reference lookup goes through the schema's
(holder, type) index, so analyzing the whole schema is O(models × relations).
"""

from __future__ import annotations

import logging
import re
from collections import deque
from typing import Deque, Dict, FrozenSet, List, Optional, Set, Tuple

from schemagen.errors import RelationshipAmbiguityWarning, SchemaError
from schemagen.models import (
    FieldDefinition,
    FieldKind,
    FilterField,
    FilterType,
    ForeignKeyInfo,
    ModelAnalysis,
    ModelDefinition,
    ParsedSchema,
    RelationshipInfo,
    RelationshipType,
    SpecialFields,
)
from schemagen.utils import to_camel_case, to_plural

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.relationships")

# ---------------------------------------------------------------------------
# Static tables
# ---------------------------------------------------------------------------

# Timestamp / audit columns that do not count as junction payload (lower-case)
SYSTEM_FIELD_NAMES: FrozenSet[str] = frozenset(
    {
        "createdat", "updatedat", "deletedat",
        "createdby", "updatedby", "deletedby",
        "createdbyid", "updatedbyid", "deletedbyid",
        "version", "rowversion",
    }
)

_INTEGER_TYPES: FrozenSet[str] = frozenset({"Int", "BigInt"})
_RANGE_TYPES: FrozenSet[str] = frozenset({"Int", "BigInt", "Float", "Decimal", "DateTime"})
_FILTERABLE_SCALAR_TYPES: FrozenSet[str] = _RANGE_TYPES | {"String", "Boolean"}

# matched against the name lower-cased with "_" and "-" removed
SENSITIVE_FIELD_RE: re.Pattern[str] = re.compile(
    r"^(password|token|secret|hash|salt|apikey|privatekey|credential|authcode|refreshtoken)"
)

# lower-cased field name -> (SpecialFields slot, accepted scalar types)
_SPECIAL_FIELD_TABLE: Dict[str, Tuple[str, FrozenSet[str]]] = {
    "slug": ("slug", frozenset({"String"})),
    "published": ("published", frozenset({"Boolean"})),
    "views": ("views", _INTEGER_TYPES),
    "likes": ("likes", _INTEGER_TYPES),
    "approved": ("approved", frozenset({"Boolean"})),
    "deletedat": ("deleted_at", frozenset({"DateTime"})),
    "parentid": ("parent_id", _INTEGER_TYPES | {"String"}),
}

# Fields whose slot can be used for a unique lookup when standalone-unique
_UNIQUE_LOOKUP_SLOTS: Tuple[str, ...] = ("slug",)

# Conventional names for the opposite side of a self-relation
_SELF_REFERENCE_PAIRS: Dict[str, Tuple[str, ...]] = {
    "parent": ("children", "subcategories", "replies"),
    "children": ("parent",),
    "subcategories": ("parent",),
    "replies": ("parent", "replyto"),
    "replyto": ("replies",),
    "followers": ("following",),
    "following": ("followers",),
    "manager": ("reports", "subordinates"),
    "reports": ("manager",),
    "subordinates": ("manager",),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve_target(
    field: FieldDefinition, model: ModelDefinition, schema: ParsedSchema
) -> ModelDefinition:
    target: Optional[ModelDefinition] = schema.get_model(field.type)
    if target is None:
        raise SchemaError(
            f"Model '{model.name}' has relation field '{field.name}' pointing to "
            f"undefined model '{field.type}'."
        )
    return target


def _multi_field_unique_sets(model: ModelDefinition) -> List[FrozenSet[str]]:
    groups: List[FrozenSet[str]] = [
        frozenset(c) for c in model.unique_constraints if len(c) > 1
    ]
    if len(model.primary_key) > 1:
        groups.append(frozenset(model.primary_key))
    return groups


def _standalone_unique_names(model: ModelDefinition) -> Set[str]:
    names: Set[str] = {f.name for f in model.scalar_fields if f.is_unique or f.is_id}
    names.update(c[0] for c in model.unique_constraints if len(c) == 1)
    if len(model.primary_key) == 1:
        names.add(model.primary_key[0])
    return names


def _is_explicit_composite_unique(model: ModelDefinition, columns: Tuple[str, ...]) -> bool:
    wanted: FrozenSet[str] = frozenset(columns)
    return any(group == wanted for group in _multi_field_unique_sets(model))


def _foreign_key_is_unique(model: ModelDefinition, columns: Tuple[str, ...]) -> bool:
    if not columns:
        return False
    if len(columns) == 1:
        return columns[0] in _standalone_unique_names(model)
    return _is_explicit_composite_unique(model, columns)


def _conventional_back_reference_names(
    field: FieldDefinition, model: ModelDefinition
) -> Set[str]:
    base: str = to_camel_case(model.name).lower()
    names: Set[str] = {base, to_plural(base)}
    if field.type == model.name:
        names.update(_SELF_REFERENCE_PAIRS.get(field.name.lower(), ()))
    return names


# ---------------------------------------------------------------------------
# Back-reference lookup
# ---------------------------------------------------------------------------


def find_back_reference(
    field: FieldDefinition,
    model: ModelDefinition,
    target: ModelDefinition,
    schema: ParsedSchema,
    claimed: Optional[Set[Tuple[str, str]]] = None,
) -> Tuple[Optional[FieldDefinition], Optional[RelationshipAmbiguityWarning]]:
    """
    Find the field on ``target`` pointing back at ``model``.

    ``field`` itself is excluded by identity so a self-relation never pairs
    with itself. Among several candidates the order of preference is a
    matching ``relation_name``, then a conventional back-reference name,
    then the first candidate not yet ``claimed`` by another field of the same
    model; only the last case produces a warning.
    """
    candidates: List[FieldDefinition] = [
        c
        for c in schema.relation_fields_of_type(target.name, model.name)
        if c is not field
        and not (
            field.relation_name
            and c.relation_name
            and c.relation_name != field.relation_name
        )
    ]
    if not candidates:
        return None, None
    if len(candidates) == 1:
        return candidates[0], None

    if field.relation_name:
        named = [c for c in candidates if c.relation_name == field.relation_name]
        if named:
            return named[0], None

    conventional: Set[str] = _conventional_back_reference_names(field, model)
    by_convention = [c for c in candidates if c.name.lower() in conventional]
    if len(by_convention) == 1:
        return by_convention[0], None

    pool: List[FieldDefinition] = by_convention or candidates
    taken: Set[Tuple[str, str]] = claimed or set()
    unmatched: List[FieldDefinition] = [
        c for c in pool if (target.name, c.name) not in taken
    ] or pool
    chosen: FieldDefinition = unmatched[0]
    warning = RelationshipAmbiguityWarning(
        model=model.name,
        field=field.name,
        target=target.name,
        candidates=[c.name for c in candidates],
        chosen=chosen.name,
    )
    return chosen, warning


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify(
    field: FieldDefinition,
    back_ref: Optional[FieldDefinition],
    model: ModelDefinition,
    target: ModelDefinition,
) -> RelationshipType:
    """Cardinality of ``field`` given the (possibly missing) back-reference."""
    if field.is_list:
        if back_ref is not None and back_ref.is_list:
            return RelationshipType.MANY_TO_MANY
        return RelationshipType.ONE_TO_MANY

    if back_ref is None:
        kind = RelationshipType.ONE_TO_ONE
    elif back_ref.is_list:
        kind = RelationshipType.MANY_TO_ONE
    else:
        # both sides single-valued: decided by the owning side's FK
        if field.owns_foreign_key:
            owner_unique = _foreign_key_is_unique(model, field.relation_from_fields)
        else:
            owner_unique = _foreign_key_is_unique(target, back_ref.relation_from_fields)
        kind = RelationshipType.ONE_TO_ONE if owner_unique else RelationshipType.MANY_TO_ONE

    if (
        kind == RelationshipType.ONE_TO_ONE
        and len(field.relation_from_fields) > 1
        and not _is_explicit_composite_unique(model, field.relation_from_fields)
    ):
        logger.debug(
            "%s.%s: composite FK %s is not an explicit unique constraint, "
            "classifying as many_to_one.",
            model.name,
            field.name,
            list(field.relation_from_fields),
        )
        kind = RelationshipType.MANY_TO_ONE
    return kind


def analyze(
    model: ModelDefinition,
    schema: ParsedSchema,
    warnings: Optional[List[RelationshipAmbiguityWarning]] = None,
    *,
    required_only: bool = False,
) -> List[RelationshipInfo]:
    """
    Classify every relation field of ``model``.

    Ambiguity warnings are appended to ``warnings`` when given, and always
    logged. Raises ``SchemaError`` for a relation to an undefined model.
    """
    results: List[RelationshipInfo] = []
    claimed: Set[Tuple[str, str]] = set()
    junction: bool = is_junction_table(model)

    for field in model.relation_fields:
        target = _resolve_target(field, model, schema)
        back_ref, warning = find_back_reference(field, model, target, schema, claimed)
        if back_ref is not None:
            claimed.add((target.name, back_ref.name))
        if warning is not None:
            logger.warning("Relationship ambiguity: %s", warning)
            if warnings is not None:
                warnings.append(warning)

        kind: RelationshipType = classify(field, back_ref, model, target)
        results.append(
            RelationshipInfo(
                source_model=model.name,
                target_model=target.name,
                field_name=field.name,
                kind=kind,
                back_reference_field=back_ref.name if back_ref is not None else None,
                is_self_referential=target is model,
                relation_name=field.relation_name,
                foreign_key_fields=field.relation_from_fields,
                is_required=field.is_required,
                is_list=field.is_list,
                auto_include=should_auto_include(field, kind, model, junction, required_only),
            )
        )
    return results


def should_auto_include(
    field: FieldDefinition,
    kind: RelationshipType,
    model: ModelDefinition,
    junction: bool,
    required_only: bool = False,
) -> bool:
    """
    Many-to-one relations of ordinary models are loaded with the row. With
    ``required_only`` every foreign-key column must also be required.
    """
    if kind != RelationshipType.MANY_TO_ONE or junction:
        return False
    if not required_only:
        return True
    for name in field.relation_from_fields:
        column: Optional[FieldDefinition] = model.get_field(name)
        if column is None or not column.is_required:
            return False
    return True


# ---------------------------------------------------------------------------
# Junction tables
# ---------------------------------------------------------------------------


def is_junction_table(model: ModelDefinition) -> bool:
    """
    True iff the model has exactly two required single-valued relations to
    two distinct models and no scalar payload besides ids, foreign keys and
    timestamp/system columns.
    """
    relations = model.relation_fields
    if len(relations) != 2:
        return False
    first, second = relations
    if first.is_list or second.is_list:
        return False
    if not (first.is_required and second.is_required):
        return False
    if first.type == second.type:
        return False

    key_names: Set[str] = set(model.foreign_key_field_names) | set(model.primary_key)
    for rel in relations:
        key_names.update(
            {f"{rel.name}Id", f"{rel.name}_id", f"{to_camel_case(rel.type)}Id"}
        )

    for f in model.scalar_fields:
        if f.is_id or f.is_updated_at or f.name in key_names:
            continue
        if f.name.lower() in SYSTEM_FIELD_NAMES:
            continue
        return False
    return True


# ---------------------------------------------------------------------------
# Special fields & uniqueness
# ---------------------------------------------------------------------------


def detect_special_fields(model: ModelDefinition) -> SpecialFields:
    """
    Single pass over scalar fields; the lower-cased name is computed once
    per field and looked up in a static table. The first field filling a
    slot wins.
    """
    found: Dict[str, FieldDefinition] = {}
    for f in model.scalar_fields:
        if f.is_list or f.kind != FieldKind.SCALAR:
            continue
        entry = _SPECIAL_FIELD_TABLE.get(f.name.lower())
        if entry is None:
            continue
        slot, accepted_types = entry
        if slot not in found and f.type in accepted_types:
            found[slot] = f
    return SpecialFields(**found)


def _composite_members(model: ModelDefinition) -> Set[str]:
    members: Set[str] = set()
    for group in _multi_field_unique_sets(model):
        members.update(group)
    return members


def find_composite_unique_conflicts(
    model: ModelDefinition, special: Optional[SpecialFields] = None
) -> Tuple[str, ...]:
    """
    Fields that look unique (marked unique, or used as a lookup key such as
    ``slug``) but belong to a multi-field unique constraint.
    """
    members: Set[str] = _composite_members(model)
    if not members:
        return ()

    special = special if special is not None else detect_special_fields(model)
    looks_unique: Set[str] = _standalone_unique_names(model)
    for slot in _UNIQUE_LOOKUP_SLOTS:
        ref: Optional[FieldDefinition] = getattr(special, slot)
        if ref is not None:
            looks_unique.add(ref.name)

    return tuple(
        f.name
        for f in model.scalar_fields
        if f.name in members and f.name in looks_unique and not f.is_id
    )


def unique_lookup_fields(model: ModelDefinition) -> Tuple[str, ...]:
    """
    Non-id scalar fields that are unique on their own and not part of any
    multi-field unique constraint, in declaration order.
    """
    standalone: Set[str] = _standalone_unique_names(model)
    members: Set[str] = _composite_members(model)
    return tuple(
        f.name
        for f in model.scalar_fields
        if not f.is_id
        and not f.is_list
        and f.name in standalone
        and f.name not in members
    )


# ---------------------------------------------------------------------------
# Search, filter and foreign-key fields
# ---------------------------------------------------------------------------


def is_sensitive_field(name: str) -> bool:
    normalized: str = name.lower().replace("_", "").replace("-", "")
    return SENSITIVE_FIELD_RE.match(normalized) is not None


def _filter_type(f: FieldDefinition) -> FilterType:
    if f.is_list:
        return FilterType.ARRAY
    if f.kind == FieldKind.ENUM:
        return FilterType.ENUM
    if f.type == "Boolean":
        return FilterType.BOOLEAN
    if f.type in _RANGE_TYPES:
        return FilterType.RANGE
    return FilterType.EXACT


def _search_override(model: ModelDefinition) -> Optional[List[str]]:
    for annotation in model.get_annotations("search"):
        names = annotation.options.get("fields")
        if isinstance(names, list):
            return [str(n) for n in names]
    return None


def analyze_fields(model: ModelDefinition) -> Tuple[Tuple[str, ...], Tuple[FilterField, ...]]:
    """
    Search and filter fields, in one pass over the non-relation fields.

    Search fields are non-id ``String`` scalars whose name does not look
    like a credential. ``@@search(fields: [...])`` narrows them to the
    listed names, in the listed order. Filter fields are non-id scalars
    of a filterable type, scalar lists of such a type, and enums.
    Foreign-key columns are neither.
    """
    fk_columns: Set[str] = set(model.foreign_key_field_names)
    searchable: List[str] = []
    filters: List[FilterField] = []

    for f in model.scalar_fields:
        if f.name in fk_columns:
            continue
        if f.kind == FieldKind.SCALAR and f.type == "String" and not f.is_id and not f.is_list:
            if not is_sensitive_field(f.name):
                searchable.append(f.name)

        if f.kind == FieldKind.ENUM:
            filterable = True
        else:
            filterable = f.type in _FILTERABLE_SCALAR_TYPES and (f.is_list or not f.is_id)
        if filterable:
            filters.append(FilterField(
                name=f.name,
                filter_type=_filter_type(f),
                field_type=f.type,
                is_required=f.is_required,
            ))

    override: Optional[List[str]] = _search_override(model)
    if override is not None:
        allowed: Set[str] = set(searchable)
        dropped: List[str] = [n for n in override if n not in allowed]
        if dropped:
            logger.warning(
                "%s: @@search fields %s are not searchable String fields; ignored.",
                model.name,
                dropped,
            )
        searchable = [n for n in override if n in allowed]
    return tuple(searchable), tuple(filters)


def foreign_keys(model: ModelDefinition) -> Tuple[ForeignKeyInfo, ...]:
    """One entry per relation field that owns foreign-key columns."""
    return tuple(
        ForeignKeyInfo(
            field_names=field.relation_from_fields,
            relation_alias=field.name,
            related_model=field.type,
            relation_name=field.relation_name,
        )
        for field in model.relation_fields
        if field.owns_foreign_key
    )


def analyze_model(
    model: ModelDefinition,
    schema: ParsedSchema,
    *,
    auto_include_required_only: bool = False,
) -> ModelAnalysis:
    """Build the complete, read-only ``ModelAnalysis`` for one model."""
    warnings: List[RelationshipAmbiguityWarning] = []
    relationships: List[RelationshipInfo] = analyze(
        model, schema, warnings, required_only=auto_include_required_only
    )
    special: SpecialFields = detect_special_fields(model)
    search, filters = analyze_fields(model)

    return ModelAnalysis(
        model_name=model.name,
        relationships=tuple(relationships),
        special_fields=special,
        is_junction_table=is_junction_table(model),
        composite_unique_conflicts=find_composite_unique_conflicts(model, special),
        unique_lookup_fields=unique_lookup_fields(model),
        search_fields=search,
        filter_fields=filters,
        foreign_keys=foreign_keys(model),
        warnings=tuple(warnings),
    )


# ---------------------------------------------------------------------------
# Topological order
# ---------------------------------------------------------------------------


def _depends_on_target(
    field: FieldDefinition, model: ModelDefinition, target: ModelDefinition, schema: ParsedSchema
) -> bool:
    if field.is_list:
        return False
    if field.owns_foreign_key:
        return True
    # the other side owns the FK of a one-to-one: it depends on us instead
    for candidate in schema.relation_fields_of_type(target.name, model.name):
        if candidate is not field and not candidate.is_list and candidate.owns_foreign_key:
            return False
    return True


def topological_order(schema: ParsedSchema) -> List[str]:
    """
    Return model names in dependency order (referenced models first).

    Kahn's algorithm, O(V + E) with V = models and E = single-valued
    relations. Self-relations are ignored and relations to undefined models
    are skipped (validators report them). On a cycle the remaining models
    are appended in declaration order.
    """
    in_degree: Dict[str, int] = {m.name: 0 for m in schema.models}
    adjacency: Dict[str, List[str]] = {m.name: [] for m in schema.models}

    for model in schema.models:
        depends: Set[str] = set()
        for field in model.relation_fields:
            target = schema.get_model(field.type)
            if target is None or target is model or target.name in depends:
                continue
            if _depends_on_target(field, model, target, schema):
                depends.add(target.name)
                adjacency[target.name].append(model.name)
                in_degree[model.name] += 1

    queue: Deque[str] = deque(n for n, d in in_degree.items() if d == 0)
    result: List[str] = []

    while queue:
        node: str = queue.popleft()
        result.append(node)
        for neighbour in adjacency[node]:
            in_degree[neighbour] -= 1
            if in_degree[neighbour] == 0:
                queue.append(neighbour)

    if len(result) != len(schema.models):
        logger.warning(
            "Circular relation dependency detected; topological order is partial. "
            "Falling back to declaration order for remaining models."
        )
        placed: Set[str] = set(result)
        result.extend(m.name for m in schema.models if m.name not in placed)

    return result


__all__: List[str] = [
    "SYSTEM_FIELD_NAMES",
    "SENSITIVE_FIELD_RE",
    "find_back_reference",
    "classify",
    "analyze",
    "should_auto_include",
    "is_junction_table",
    "detect_special_fields",
    "find_composite_unique_conflicts",
    "unique_lookup_fields",
    "is_sensitive_field",
    "analyze_fields",
    "foreign_keys",
    "analyze_model",
    "topological_order",
]

logger.debug("schemagen.relationships loaded.")
