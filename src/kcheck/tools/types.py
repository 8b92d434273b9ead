from typing import Any, NamedTuple, NewType


Manifest = NewType("Manifest", dict[str, Any])
""" Represents a Kubernetes manifest. """

Manifests = NewType("Manifests", list[Manifest])
""" Represents a list of Kubernetes manifests. """


class GroupVersionKind(NamedTuple):
    """
    Identifies a Kubernetes resource type. The group is an empty string for the core API group.
    """

    group: str
    version: str
    kind: str

    @staticmethod
    def from_manifest(manifest: Manifest) -> "GroupVersionKind":
        """
        Parse the `apiVersion` and `kind` of a manifest. Raises a `ValueError` if the `apiVersion` is malformed.
        """

        group, version = split_api_version(manifest["apiVersion"])
        return GroupVersionKind(group, version, manifest["kind"])

    @property
    def group_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    def __str__(self) -> str:
        return f"{self.group_version}, Kind={self.kind}"


def split_api_version(api_version: str) -> tuple[str, str]:
    """
    Split an `apiVersion` into its group and version, e.g. `apps/v1` into `("apps", "v1")` and `v1` into `("", "v1")`.
    """

    parts = api_version.split("/")
    if len(parts) == 1 and parts[0]:
        return "", parts[0]
    if len(parts) == 2 and all(parts):
        return parts[0], parts[1]
    raise ValueError(f"Malformed apiVersion: {api_version!r}")
