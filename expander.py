"""
JSON Schema Expander

Turns a JSON Schema (or an OpenAPI component schema) into one self-contained
document. Every reference to a named component is resolved, hoisted into a
flat ``definitions`` table and rewritten to point at it. OpenAPI conveniences
are desugared on the way:

1. ``nullable: true`` becomes an explicit ``null`` type or branch
2. ``discriminator.mapping`` values point at ``#/definitions/...``
3. a bare ``mapping`` object gets the same treatment
4. a ``$ref`` at the root is flattened into the returned document

The output keys are ordered deterministically so expanded schemas diff cleanly.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Union

logger = logging.getLogger(__name__)

DEFAULT_PATHS = ["components", "schemas"]

DEFAULT_SORT_ORDER = [
    "$id",
    "$schema",
    "type",
    "role",
    "name",
    "title",
    "description",
]

DEFAULT_CONFIG = {
    "paths": DEFAULT_PATHS,
    "sort_order": DEFAULT_SORT_ORDER,
    "strict": False,
}

DEFINITIONS_PREFIX = "#/definitions/"

_NAME_SEPARATORS = re.compile(r"[-_.]")


class SchemaExpansionError(Exception):
    """Base class for expansion errors."""


class UnresolvedReferenceError(SchemaExpansionError, LookupError):
    """Raised in strict mode when a local pointer resolves to nothing."""

    def __init__(self, ref: str):
        super().__init__(f"Unresolved reference: {ref}")
        self.ref = ref


def is_object(value: Any) -> bool:
    """Return True for JSON objects (dicts), False for arrays, null and scalars."""
    return isinstance(value, dict)


def sort_keys(schema: Any, order: Optional[Sequence[str]] = None) -> Any:
    """
    Reorder the keys of every object in a schema tree.

    Keys listed in ``order`` come first, in that order; the remaining keys keep
    their original relative order. The direct ``properties`` of the top-level
    schema are additionally sorted by name.

    Args:
        schema: The schema tree to reorder
        order: Priority key names (defaults to DEFAULT_SORT_ORDER)

    Returns:
        A reordered copy of the schema
    """
    if order is None:
        order = DEFAULT_SORT_ORDER

    def walk(node: Any) -> Any:
        if isinstance(node, list):
            return [walk(item) for item in node]

        if is_object(node):
            result = {}
            for key in order:
                if key in node and key not in result:
                    result[key] = walk(node[key])
            for key, value in node.items():
                if key not in result:
                    result[key] = walk(value)
            return result

        return node

    if is_object(schema) and is_object(schema.get("properties")):
        properties = schema["properties"]
        schema = dict(schema)
        schema["properties"] = {key: properties[key] for key in sorted(properties, key=str)}

    return walk(schema)


def get_def_name(ref: str) -> str:
    """
    Derive a definition name from the last segment of a pointer.

    ``#/components/schemas/user-profile`` gives ``UserProfile``.
    """
    name = ref.split("/")[-1]
    return "".join(part[:1].upper() + part[1:] for part in _NAME_SEPARATORS.split(name))


def build_path_pattern(paths: Optional[Sequence[str]] = None) -> re.Pattern:
    """Compile the regex that recognizes pointers under the given path prefixes."""
    if paths is None:
        paths = DEFAULT_PATHS
    alternatives = "|".join(re.escape(path) for path in paths)
    return re.compile(f"^#/({alternatives})/")


def convert_to_def_ref(ref: Any, paths: Union[Sequence[str], re.Pattern, None] = None) -> Any:
    """
    Rewrite a pointer under one of the configured prefixes to ``#/definitions/<Name>``.

    Args:
        ref: The pointer to rewrite
        paths: Path prefixes (or a pattern from build_path_pattern)

    Returns:
        The rewritten pointer, or ``ref`` unchanged when no prefix matches
    """
    if not isinstance(ref, str):
        return ref

    pattern = paths if isinstance(paths, re.Pattern) else build_path_pattern(paths)
    if pattern.match(ref):
        return f"{DEFINITIONS_PREFIX}{get_def_name(ref)}"
    return ref


def resolve_ref(schema: Any, ref: Any) -> Any:
    """
    Look up the node a local pointer refers to.

    Resolution is soft: a malformed pointer or a missing segment yields None.

    Args:
        schema: The document the pointer is relative to
        ref: A pointer such as ``#/components/schemas/User``

    Returns:
        The referenced node, or None when it cannot be found
    """
    if not isinstance(ref, str) or not ref.startswith("#/"):
        return None

    value = schema
    for part in ref[2:].split("/"):
        if is_object(value):
            # YAML loads keys such as 200 as integers
            if part not in value and part.isdigit():
                value = value.get(int(part))
            else:
                value = value.get(part)
        elif isinstance(value, list) and part.isdigit() and int(part) < len(value):
            value = value[int(part)]
        else:
            return None

        if value is None:
            return None

    return value


def merge_ref(node: Dict[str, Any], resolved: Any) -> Dict[str, Any]:
    """
    Build the node a reference stands for.

    Starts from ``node`` without its ``$ref`` and overlays the fields of
    ``resolved``; resolved fields win. A missing target adds nothing.
    """
    merged = {key: value for key, value in node.items() if key != "$ref"}
    if is_object(resolved):
        merged.update(resolved)
    return merged


def apply_nullable(schema: Dict[str, Any]) -> None:
    """
    Replace ``nullable`` with an explicit null alternative, in place.

    Exactly one of oneOf, anyOf or type receives it, in that order.
    """
    for keyword in ("oneOf", "anyOf"):
        branches = schema.get(keyword)
        if isinstance(branches, list):
            if not any(is_object(b) and b.get("type") == "null" for b in branches):
                schema[keyword] = [{"type": "null"}] + branches
            break
    else:
        types = schema.get("type")
        if isinstance(types, list) or types:
            types = list(types) if isinstance(types, list) else [types]
            if "null" not in types:
                types.append("null")
            schema["type"] = types

    del schema["nullable"]


def desugar_nullable(schema: Any) -> Any:
    """Return a copy of a schema tree with every ``nullable`` desugared and references untouched."""
    if isinstance(schema, list):
        return [desugar_nullable(item) for item in schema]

    if not is_object(schema):
        return schema

    result = {key: desugar_nullable(value) for key, value in schema.items()}
    if result.get("nullable"):
        apply_nullable(result)
    return result


@dataclass
class ExpansionContext:
    """State for a single top-level expansion."""

    # original pointer -> rewritten pointer
    cache: Dict[str, str] = field(default_factory=dict)
    # derived name -> expanded schema
    definitions: Dict[str, Any] = field(default_factory=dict)
    # pointers flattened into the root so far
    root_refs: Set[str] = field(default_factory=set)


class SchemaExpander:
    """
    Expands references and desugars OpenAPI keywords into plain JSON Schema.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = dict(DEFAULT_CONFIG)
        if config:
            config = dict(config)
            if "sortOrder" in config:
                config.setdefault("sort_order", config.pop("sortOrder"))
            self.config.update({k: v for k, v in config.items() if v is not None})

        self.paths: List[str] = list(self.config["paths"])
        self.sort_order: List[str] = list(self.config["sort_order"])
        self.strict: bool = bool(self.config["strict"])
        self._pattern = build_path_pattern(self.paths)

    def expand(self, schema: Any, definitions: Any = None) -> Any:
        """
        Expand a schema against a definitions source.

        Args:
            schema: The root schema to expand
            definitions: The document all pointers are resolved against

        Returns:
            The expanded schema with hoisted ``definitions``, keys ordered
        """
        if definitions is None:
            definitions = {}

        context = ExpansionContext()
        expanded = self._expand(schema, definitions, context, is_root=True)

        if context.definitions:
            if is_object(expanded):
                existing = expanded.get("definitions")
                table = dict(existing) if is_object(existing) else {}
                for name, definition in context.definitions.items():
                    table.setdefault(name, definition)
                expanded["definitions"] = table
            else:
                logger.warning(
                    "Dropping %d hoisted definitions: root is not an object",
                    len(context.definitions),
                )

        return sort_keys(expanded, self.sort_order)

    def _resolve(self, definitions: Any, ref: str) -> Any:
        resolved = resolve_ref(definitions, ref)
        if resolved is None:
            if self.strict:
                raise UnresolvedReferenceError(ref)
            logger.warning("Could not resolve %s", ref)
        return resolved

    def _expand(
        self,
        schema: Any,
        definitions: Any,
        context: ExpansionContext,
        is_root: bool = False,
    ) -> Any:
        if isinstance(schema, list):
            return [
                self._expand(item, definitions, context)
                if isinstance(item, (dict, list)) else item
                for item in schema
            ]

        if not is_object(schema):
            return schema

        result = dict(schema)

        if result.get("nullable"):
            apply_nullable(result)

        discriminator = result.get("discriminator")
        if is_object(discriminator) and is_object(discriminator.get("mapping")):
            discriminator = dict(discriminator)
            discriminator["mapping"] = self._rewrite_mapping(discriminator["mapping"])
            result["discriminator"] = discriminator

        if is_object(result.get("mapping")):
            result["mapping"] = self._rewrite_mapping(result["mapping"])

        ref = result.get("$ref")
        if isinstance(ref, str) and ref:
            if not is_root:
                return self._expand_nested_ref(result, ref, definitions, context)
            if ref.startswith("#/") and ref not in context.root_refs:
                context.root_refs.add(ref)
                logger.debug("Flattening root reference %s", ref)
                merged = merge_ref(result, self._resolve(definitions, ref))
                return self._expand(merged, definitions, context, is_root=True)
            if ref in context.root_refs:
                return self._expand_nested_ref(result, ref, definitions, context)

        expanded_keys = set()

        # if/then/else
        if "if" in result and "then" in result:
            for key in ("if", "then", "else"):
                if key in result:
                    result[key] = self._expand(result[key], definitions, context)
                    expanded_keys.add(key)

        for key, value in list(result.items()):
            if key not in expanded_keys and isinstance(value, (dict, list)):
                result[key] = self._expand(value, definitions, context)

        return result

    def _expand_nested_ref(
        self,
        schema: Dict[str, Any],
        ref: str,
        definitions: Any,
        context: ExpansionContext,
    ) -> Dict[str, str]:
        """
        Replace a nested reference with a pointer into the hoisted table.

        The rewritten pointer is cached before the target is expanded, so a
        cycle back to the same pointer stops at the cache.
        """
        if ref in context.cache:
            logger.debug("Reusing %s for %s", context.cache[ref], ref)
            return {"$ref": context.cache[ref]}

        new_ref = convert_to_def_ref(ref, self._pattern)
        context.cache[ref] = new_ref

        name = get_def_name(ref)
        if new_ref == f"{DEFINITIONS_PREFIX}{name}" and name not in context.definitions:
            logger.debug("Hoisting %s as %s", ref, name)
            merged = merge_ref(schema, self._resolve(definitions, ref))
            context.definitions[name] = self._expand(merged, definitions, context)

        return {"$ref": new_ref}

    def _rewrite_mapping(self, mapping: Dict[str, Any]) -> Dict[str, Any]:
        return {key: convert_to_def_ref(value, self._pattern) for key, value in mapping.items()}


def expand_schema(
    schema: Any,
    definitions: Any = None,
    options: Optional[Dict[str, Any]] = None,
) -> Any:
    """
    Expand a JSON Schema into a self-contained document.

    Args:
        schema: The root schema to expand
        definitions: The document pointers are resolved against
        options: ``paths``, ``sort_order`` (or ``sortOrder``) and ``strict``

    Returns:
        The expanded schema
    """
    expander = SchemaExpander(options)
    return expander.expand(schema, definitions)
