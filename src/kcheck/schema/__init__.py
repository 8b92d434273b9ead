"""
This package provides the OpenAPI schema of Kubernetes resource kinds, as published by a cluster.

Schemas are represented as immutable trees of [SchemaNode]s. References between definitions (which may be recursive)
are kept by name and resolved through the [SchemaDocument] that contains them.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Union

from kcheck.tools.types import GroupVersionKind

PRIMITIVE_TYPES = frozenset({"string", "integer", "number", "boolean", "object", "array"})


@dataclass
class DiscoveryError(Exception):
    """
    Raised when the schema cannot be retrieved from the cluster or is malformed. There is nothing to validate against
    without a schema, so this aborts a validation run.
    """

    endpoint: str
    message: str

    def __str__(self) -> str:
        return f"Schema discovery failed for '{self.endpoint}': {self.message}"


@dataclass
class UnknownKindError(Exception):
    """
    Raised when the cluster does not publish a schema for a resource kind.
    """

    gvk: GroupVersionKind

    def __str__(self) -> str:
        return f"Kind '{self.gvk.kind}' is not recognized by the cluster for apiVersion '{self.gvk.group_version}'"


@dataclass(frozen=True)
class SchemaNode:
    """
    The schema of a single value.
    """

    types: frozenset[str] = frozenset()
    """ The primitive types that the value may have. Empty if the schema does not restrict the type. """

    properties: Mapping[str, "SchemaNode"] = field(default_factory=lambda: MappingProxyType({}))
    """ The schema of the known fields of an object. """

    required: frozenset[str] = frozenset()
    """ The fields of an object that must be present. """

    items: "SchemaNode | None" = None
    """ The schema of the elements of an array. """

    additional_properties: "Union[SchemaNode, bool, None]" = None
    """
    Whether an object may have fields that are not declared in [properties]. A [SchemaNode] permits them and describes
    their values. `None` means the schema does not say.
    """

    ref: str | None = None
    """ The name of the definition that this node refers to. Other attributes are ignored if this is set. """

    nullable: bool = False
    preserve_unknown_fields: bool = False

    @property
    def allows_unknown_fields(self) -> bool:
        """
        Whether fields that are not declared in [properties] are accepted. Objects that declare no properties at all
        are free-form.
        """

        if self.preserve_unknown_fields or self.additional_properties not in (None, False):
            return True
        return not self.properties


@dataclass(frozen=True)
class SchemaDocument:
    """
    All definitions published for a group version, plus a lookup table from resource kind to definition name.
    """

    definitions: Mapping[str, SchemaNode]
    kinds: Mapping[GroupVersionKind, str]

    def resolve(self, node: SchemaNode) -> SchemaNode:
        """
        Follow references until reaching a node that is not a reference. Unresolvable references and reference
        cycles resolve to a schema that accepts anything.
        """

        seen: set[str] = set()
        while node.ref is not None:
            if node.ref in seen or node.ref not in self.definitions:
                return SchemaNode()
            seen.add(node.ref)
            node = self.definitions[node.ref]
        return node


@dataclass(frozen=True)
class SchemaDefinition:
    """
    The schema of a resource kind.
    """

    gvk: GroupVersionKind
    name: str
    """ The name of the definition in the document, e.g. `io.k8s.api.apps.v1.Deployment`. """

    document: SchemaDocument

    @property
    def root(self) -> SchemaNode:
        return self.document.definitions[self.name]

    def resolve(self, node: SchemaNode) -> SchemaNode:
        return self.document.resolve(node)
