import threading
from typing import Any, Protocol

from loguru import logger

from kcheck.schema import SchemaDefinition, SchemaDocument, UnknownKindError
from kcheck.schema.openapi import parse_openapi
from kcheck.tools.types import GroupVersionKind


class SchemaFetcher(Protocol):
    """
    Retrieves raw schema documents from a cluster.
    """

    @property
    def endpoint(self) -> str:
        """
        A description of where schemas are fetched from, for use in messages.
        """

    def fetch_schema(self, group_version: str) -> dict[str, Any] | None:
        """
        Fetch the schema document for a group version, e.g. `v1` or `apps/v1`. Returns `None` if the cluster does not
        serve the group version.

        Raises:
            DiscoveryError: If the cluster cannot be reached or returns malformed data.
        """


class SchemaSource:
    """
    Provides the schema of resource kinds. Schema documents are fetched lazily, once per group version, and cached
    for the lifetime of the instance.

    The instance can be shared between threads. Concurrent requests for a group version that is not yet cached wait
    for a single fetch instead of fetching again.
    """

    def __init__(self, fetcher: SchemaFetcher) -> None:
        self._fetcher = fetcher
        self._lock = threading.Lock()
        self._fetch_locks: dict[str, threading.Lock] = {}
        self._documents: dict[str, SchemaDocument | None] = {}

    @property
    def endpoint(self) -> str:
        return self._fetcher.endpoint

    def schema(self, gvk: GroupVersionKind) -> SchemaDefinition:
        """
        Return the schema definition of a resource kind.

        Raises:
            UnknownKindError: If the cluster does not know the kind.
            DiscoveryError: If the schema cannot be fetched.
        """

        document = self.document(gvk.group_version)
        if document is None or gvk not in document.kinds:
            raise UnknownKindError(gvk)
        return SchemaDefinition(gvk, document.kinds[gvk], document)

    def document(self, group_version: str) -> SchemaDocument | None:
        """
        Return the schema document for a group version, or `None` if the cluster does not serve it.
        """

        with self._lock:
            if group_version in self._documents:
                return self._documents[group_version]
            fetch_lock = self._fetch_locks.setdefault(group_version, threading.Lock())

        with fetch_lock:
            with self._lock:
                if group_version in self._documents:
                    return self._documents[group_version]

            logger.debug("Fetching schema for '{}' from '{}'", group_version, self.endpoint)
            raw = self._fetcher.fetch_schema(group_version)
            if raw is None:
                logger.debug("Group version '{}' is not served by '{}'", group_version, self.endpoint)
                document = None
            else:
                document = parse_openapi(raw, f"{self.endpoint} ({group_version})")
                logger.debug(
                    "Loaded {} definition(s) for '{}', {} of them resource kinds",
                    len(document.definitions),
                    group_version,
                    len(document.kinds),
                )

            with self._lock:
                self._documents[group_version] = document
            return document
