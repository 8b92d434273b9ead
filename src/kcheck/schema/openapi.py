"""
Parse OpenAPI v3 and Swagger 2.0 documents as published by the Kubernetes API server into a [SchemaDocument].
"""

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from kcheck.schema import PRIMITIVE_TYPES, DiscoveryError, SchemaDocument, SchemaNode
from kcheck.tools.types import GroupVersionKind

GVK_EXTENSION = "x-kubernetes-group-version-kind"
INT_OR_STRING = frozenset({"integer", "string"})


def parse_openapi(document: Any, endpoint: str) -> SchemaDocument:
    """
    Parse a raw schema document. The *endpoint* is only used for error messages.

    Raises:
        DiscoveryError: If the document does not look like an OpenAPI or Swagger document.
    """

    if not isinstance(document, Mapping):
        raise DiscoveryError(endpoint, f"Expected the schema document to be an object, got {type(document).__name__}")

    if "components" in document:
        components = document["components"]
        raw_definitions = components.get("schemas") if isinstance(components, Mapping) else None
    else:
        raw_definitions = document.get("definitions")
    if not isinstance(raw_definitions, Mapping):
        raise DiscoveryError(endpoint, "The schema document contains no definitions")

    definitions: dict[str, SchemaNode] = {}
    kinds: dict[GroupVersionKind, str] = {}
    for name, schema in raw_definitions.items():
        if not isinstance(schema, Mapping):
            raise DiscoveryError(endpoint, f"Definition '{name}' is not an object")
        try:
            definitions[name] = parse_schema(schema)
        except ValueError as exc:
            raise DiscoveryError(endpoint, f"Definition '{name}' is malformed: {exc}")
        for gvk in schema.get(GVK_EXTENSION, []):
            try:
                key = GroupVersionKind(gvk.get("group", ""), gvk["version"], gvk["kind"])
            except (AttributeError, KeyError, TypeError):
                raise DiscoveryError(endpoint, f"Definition '{name}' has a malformed {GVK_EXTENSION} entry: {gvk!r}")
            kinds.setdefault(key, name)

    return SchemaDocument(MappingProxyType(definitions), MappingProxyType(kinds))


def parse_schema(schema: Mapping[str, Any]) -> SchemaNode:
    """
    Parse a single (possibly nested) schema object. Raises a `ValueError` if the schema has a malformed `properties`
    or `required` entry.
    """

    nullable = bool(schema.get("nullable", False))

    if "$ref" in schema:
        return SchemaNode(ref=_ref_name(schema["$ref"]), nullable=nullable)

    # OpenAPI v3 wraps references that carry a default or description into a single-element `allOf`.
    all_of = schema.get("allOf")
    if isinstance(all_of, list) and len(all_of) == 1 and isinstance(all_of[0], Mapping):
        inner = parse_schema(all_of[0])
        return SchemaNode(
            types=inner.types,
            properties=inner.properties,
            required=inner.required,
            items=inner.items,
            additional_properties=inner.additional_properties,
            ref=inner.ref,
            nullable=nullable or inner.nullable,
            preserve_unknown_fields=inner.preserve_unknown_fields,
        )

    types, types_nullable = _parse_types(schema)

    raw_properties = schema.get("properties") or {}
    if not isinstance(raw_properties, Mapping):
        raise ValueError(f"'properties' must be an object, got {type(raw_properties).__name__}")
    required = schema.get("required") or []
    if not isinstance(required, list) or not all(isinstance(name, str) for name in required):
        raise ValueError(f"'required' must be a list of field names, got {required!r}")

    properties = {name: parse_schema(value) for name, value in raw_properties.items() if isinstance(value, Mapping)}
    if properties and not types:
        types = frozenset({"object"})

    items = schema.get("items")
    additional = schema.get("additionalProperties")

    return SchemaNode(
        types=types,
        properties=MappingProxyType(properties),
        required=frozenset(required),
        items=parse_schema(items) if isinstance(items, Mapping) else None,
        additional_properties=parse_schema(additional) if isinstance(additional, Mapping) else additional,
        nullable=nullable or types_nullable,
        preserve_unknown_fields=bool(schema.get("x-kubernetes-preserve-unknown-fields", False)),
    )


def _parse_types(schema: Mapping[str, Any]) -> tuple[frozenset[str], bool]:
    """
    Return the primitive types permitted by the *schema*, and whether it permits `null`.
    """

    if schema.get("x-kubernetes-int-or-string") or schema.get("format") == "int-or-string":
        return INT_OR_STRING, False

    declared = schema.get("type")
    if isinstance(declared, str):
        return frozenset({declared}) & PRIMITIVE_TYPES, declared == "null"
    if isinstance(declared, list):
        return frozenset(declared) & PRIMITIVE_TYPES, "null" in declared

    # A union of plain types, e.g. `anyOf: [{type: integer}, {type: string}]`. Unions involving anything else are not
    # restricted.
    for key in ("anyOf", "oneOf"):
        options = schema.get(key)
        if not isinstance(options, list):
            continue
        if all(isinstance(option, Mapping) and set(option) == {"type"} for option in options):
            union = frozenset(str(option["type"]) for option in options)
            return union & PRIMITIVE_TYPES, "null" in union
        return frozenset(), False

    return frozenset(), False


def _ref_name(ref: str) -> str:
    """
    `#/components/schemas/io.k8s.api.core.v1.PodSpec` and `#/definitions/io.k8s.api.core.v1.PodSpec` both refer to
    the definition `io.k8s.api.core.v1.PodSpec`.
    """

    return ref.rsplit("/", 1)[-1]
