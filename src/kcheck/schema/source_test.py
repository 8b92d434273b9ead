import threading
from typing import Any

import pytest

from kcheck.schema import DiscoveryError, UnknownKindError
from kcheck.schema.source import SchemaSource
from kcheck.tools.types import GroupVersionKind

DEPLOYMENT = GroupVersionKind("apps", "v1", "Deployment")
SERVICE = GroupVersionKind("", "v1", "Service")


def test_SchemaSource_fetches_each_group_version_once(fetcher: Any) -> None:
    schemas = SchemaSource(fetcher)

    first = schemas.schema(DEPLOYMENT)
    second = schemas.schema(DEPLOYMENT)
    schemas.schema(SERVICE)
    schemas.schema(GroupVersionKind("", "v1", "ConfigMap"))

    assert first.name == "io.k8s.api.apps.v1.Deployment"
    assert first.document is second.document
    assert fetcher.calls == ["apps/v1", "v1"]


def test_SchemaSource_concurrent_requests_share_one_fetch(fetcher: Any) -> None:
    fetcher.delay = 0.1
    schemas = SchemaSource(fetcher)
    barrier = threading.Barrier(8)
    results: list[Any] = []

    def worker() -> None:
        barrier.wait()
        results.append(schemas.schema(DEPLOYMENT))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert fetcher.calls == ["apps/v1"]
    assert len(results) == 8
    assert all(result.document is results[0].document for result in results)


def test_SchemaSource_unknown_kind(fetcher: Any) -> None:
    schemas = SchemaSource(fetcher)

    with pytest.raises(UnknownKindError) as excinfo:
        schemas.schema(GroupVersionKind("apps", "v1", "DaemonSett"))
    assert excinfo.value.gvk.kind == "DaemonSett"


def test_SchemaSource_unserved_group_version_is_an_unknown_kind_and_cached(fetcher: Any) -> None:
    schemas = SchemaSource(fetcher)
    gvk = GroupVersionKind("monitoring.coreos.com", "v1", "ServiceMonitor")

    for _ in range(2):
        with pytest.raises(UnknownKindError):
            schemas.schema(gvk)

    assert fetcher.calls == ["monitoring.coreos.com/v1"]


def test_SchemaSource_propagates_discovery_errors(fetcher: Any) -> None:
    def fail(group_version: str) -> None:
        raise DiscoveryError(fetcher.endpoint, "connection refused")

    fetcher.fetch_schema = fail
    schemas = SchemaSource(fetcher)

    with pytest.raises(DiscoveryError) as excinfo:
        schemas.schema(SERVICE)
    assert str(excinfo.value) == "Schema discovery failed for 'https://kubernetes.test:6443': connection refused"


def test_GroupVersionKind_from_manifest() -> None:
    assert GroupVersionKind.from_manifest({"apiVersion": "v1", "kind": "Pod"}) == ("", "v1", "Pod")
    assert GroupVersionKind.from_manifest({"apiVersion": "apps/v1", "kind": "Deployment"}) == DEPLOYMENT
    assert DEPLOYMENT.group_version == "apps/v1"
    assert SERVICE.group_version == "v1"

    for api_version in ("", "/v1", "apps/", "a/b/c"):
        with pytest.raises(ValueError):
            GroupVersionKind.from_manifest({"apiVersion": api_version, "kind": "Pod"})
