"""
This package validates Kubernetes manifests against the schema published by a cluster.

Problems are reported as [ValidationError] records rather than raised, so that every problem in every manifest can be
reported in a single run.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from kcheck.schema import SchemaDefinition, SchemaNode, UnknownKindError
from kcheck.schema.source import SchemaSource
from kcheck.tools.types import GroupVersionKind, Manifest


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class UnknownFieldPolicy(str, Enum):
    """
    How to report fields that are not declared in the schema.
    """

    ERROR = "error"
    WARNING = "warning"
    IGNORE = "ignore"


@dataclass(frozen=True)
class ObjectRef:
    """
    Identifies a manifest in messages.
    """

    api_version: str | None
    kind: str | None
    namespace: str | None
    name: str | None

    @staticmethod
    def from_manifest(manifest: Any) -> "ObjectRef":
        if not isinstance(manifest, Mapping):
            return ObjectRef(None, None, None, None)
        metadata = manifest.get("metadata")
        if not isinstance(metadata, Mapping):
            metadata = {}
        return ObjectRef(
            api_version=_str_or_none(manifest.get("apiVersion")),
            kind=_str_or_none(manifest.get("kind")),
            namespace=_str_or_none(metadata.get("namespace")),
            name=_str_or_none(metadata.get("name")),
        )

    def __str__(self) -> str:
        name = self.name or "<unnamed>"
        if self.namespace:
            name = f"{self.namespace}/{name}"
        result = f"{self.kind or '<unknown kind>'} {name}"
        if self.api_version:
            result += f" ({self.api_version})"
        return result


@dataclass(frozen=True)
class ValidationError:
    """
    A problem found in a manifest.
    """

    object: ObjectRef
    path: str
    """ Location of the problem within the manifest, e.g. `spec.template.spec.containers[0].image`. Empty if the
    problem concerns the manifest as a whole. """

    message: str
    severity: Severity = Severity.ERROR

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message


class Validator:
    """
    Validates manifests against the schemas provided by a [SchemaSource].

    The validator holds no state besides its configuration and the schema source, so [validate] can be called from
    multiple threads at once.
    """

    def __init__(self, schemas: SchemaSource, unknown_fields: UnknownFieldPolicy = UnknownFieldPolicy.ERROR) -> None:
        self.schemas = schemas
        self.unknown_fields = unknown_fields

    def validate(self, manifest: Manifest) -> list[ValidationError]:
        """
        Validate a manifest and return all problems found, in the order they occur in the manifest.

        Raises:
            DiscoveryError: If the schema cannot be fetched from the cluster.
        """

        ref = ObjectRef.from_manifest(manifest)

        if not isinstance(manifest, Mapping):
            return [ValidationError(ref, "", f"Expected the manifest to be an object, got {type(manifest).__name__}")]

        missing = [key for key in ("apiVersion", "kind") if not isinstance(manifest.get(key), str)]
        if missing:
            fields = " and ".join(f'"{key}"' for key in missing)
            return [ValidationError(ref, "", f"Manifest has no {fields} field, cannot determine its schema")]

        try:
            gvk = GroupVersionKind.from_manifest(manifest)
        except ValueError as exc:
            return [ValidationError(ref, "apiVersion", str(exc))]

        try:
            definition = self.schemas.schema(gvk)
        except UnknownKindError as exc:
            return [ValidationError(ref, "", str(exc))]

        return _Walker(ref, definition, self.unknown_fields).walk(manifest)


def validate(
    manifest: Manifest,
    schemas: SchemaSource,
    unknown_fields: UnknownFieldPolicy = UnknownFieldPolicy.ERROR,
) -> list[ValidationError]:
    """
    Validate a single manifest. See [Validator.validate].
    """

    return Validator(schemas, unknown_fields).validate(manifest)


class _Walker:
    """
    Walks a manifest and its schema side by side, collecting problems.
    """

    def __init__(self, ref: ObjectRef, definition: SchemaDefinition, unknown_fields: UnknownFieldPolicy) -> None:
        self._ref = ref
        self._definition = definition
        self._unknown_fields = unknown_fields
        self._errors: list[ValidationError] = []

    def walk(self, manifest: Mapping[str, Any]) -> list[ValidationError]:
        self._visit(manifest, self._definition.root, "")
        return self._errors

    def _error(self, path: str, message: str, severity: Severity = Severity.ERROR) -> None:
        self._errors.append(ValidationError(self._ref, path, message, severity))

    def _visit(self, value: Any, node: SchemaNode, path: str) -> None:
        # A reference may be marked nullable even if the definition it points to is not.
        nullable = node.nullable
        node = self._definition.resolve(node)

        if value is None:
            if nullable or node.nullable or not node.types:
                return
            self._error(path, f"Expected {_describe_types(node.types)}, got null")
            return

        if node.types and not any(_matches_type(value, type_) for type_ in node.types):
            self._error(path, f"Expected {_describe_types(node.types)}, got {_describe_value(value)}")
            return

        if isinstance(value, Mapping):
            self._visit_object(value, node, path)
        elif isinstance(value, Sequence) and not isinstance(value, str):
            if node.items is not None:
                for index, item in enumerate(value):
                    self._visit(item, node.items, f"{path}[{index}]")

    def _visit_object(self, value: Mapping[str, Any], node: SchemaNode, path: str) -> None:
        for name in sorted(node.required):
            if value.get(name) is None:
                self._error(_join(path, name), f'Missing required field "{name}"')

        for name, item in value.items():
            item_path = _join(path, str(name))
            if name in node.properties:
                # Explicit nulls are treated like absent fields.
                if item is not None:
                    self._visit(item, node.properties[name], item_path)
            elif isinstance(node.additional_properties, SchemaNode):
                self._visit(item, node.additional_properties, item_path)
            elif not node.allows_unknown_fields and self._unknown_fields != UnknownFieldPolicy.IGNORE:
                severity = Severity.WARNING if self._unknown_fields == UnknownFieldPolicy.WARNING else Severity.ERROR
                self._error(item_path, f'Unknown field "{name}"', severity)


def _matches_type(value: Any, type_: str) -> bool:
    if type_ == "string":
        return isinstance(value, str)
    if type_ == "boolean":
        return isinstance(value, bool)
    if type_ == "integer":
        if isinstance(value, bool):
            return False
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    if type_ == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if type_ == "object":
        return isinstance(value, Mapping)
    if type_ == "array":
        return isinstance(value, Sequence) and not isinstance(value, str)
    return True


def _describe_types(types: frozenset[str]) -> str:
    return " or ".join(sorted(types))


def _describe_value(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, Sequence):
        return "array"
    return type(value).__name__


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None
