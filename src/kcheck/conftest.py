import threading
import time
from pathlib import Path
from textwrap import dedent
from typing import Any

import pytest

from kcheck.schema.source import SchemaSource

META = "#/components/schemas/io.k8s.apimachinery.pkg.apis.meta.v1.ObjectMeta"


def _ref(name: str) -> dict[str, Any]:
    return {"allOf": [{"$ref": f"#/components/schemas/{name}"}], "default": {}}


def _resource(group: str, version: str, kind: str, **properties: Any) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "apiVersion": {"type": "string"},
            "kind": {"type": "string"},
            "metadata": {"allOf": [{"$ref": META}], "default": {}},
            **properties,
        },
        "x-kubernetes-group-version-kind": [{"group": group, "kind": kind, "version": version}],
    }


OBJECT_META = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "namespace": {"type": "string"},
        "labels": {"type": "object", "additionalProperties": {"type": "string", "default": ""}},
        "annotations": {"type": "object", "additionalProperties": {"type": "string", "default": ""}},
    },
}

CORE_V1 = {
    "openapi": "3.0.0",
    "components": {
        "schemas": {
            "io.k8s.apimachinery.pkg.apis.meta.v1.ObjectMeta": OBJECT_META,
            "io.k8s.apimachinery.pkg.util.intstr.IntOrString": {"type": "string", "format": "int-or-string"},
            "io.k8s.api.core.v1.Service": _resource("", "v1", "Service", spec=_ref("io.k8s.api.core.v1.ServiceSpec")),
            "io.k8s.api.core.v1.ServiceSpec": {
                "type": "object",
                "required": ["ports"],
                "properties": {
                    "ports": {"type": "array", "items": _ref("io.k8s.api.core.v1.ServicePort")},
                    "selector": {"type": "object", "additionalProperties": {"type": "string"}},
                    "type": {"type": "string"},
                },
            },
            "io.k8s.api.core.v1.ServicePort": {
                "type": "object",
                "required": ["port"],
                "properties": {
                    "name": {"type": "string"},
                    "port": {"type": "integer", "format": "int32"},
                    "protocol": {"type": "string"},
                    "targetPort": _ref("io.k8s.apimachinery.pkg.util.intstr.IntOrString"),
                },
            },
            "io.k8s.api.core.v1.ConfigMap": _resource(
                "",
                "v1",
                "ConfigMap",
                data={"type": "object", "additionalProperties": {"type": "string", "default": ""}},
                immutable={"type": "boolean"},
            ),
        }
    },
}

APPS_V1 = {
    "openapi": "3.0.0",
    "components": {
        "schemas": {
            "io.k8s.apimachinery.pkg.apis.meta.v1.ObjectMeta": OBJECT_META,
            "io.k8s.apimachinery.pkg.apis.meta.v1.LabelSelector": {
                "type": "object",
                "properties": {"matchLabels": {"type": "object", "additionalProperties": {"type": "string"}}},
            },
            "io.k8s.api.apps.v1.Deployment": _resource(
                "apps", "v1", "Deployment", spec=_ref("io.k8s.api.apps.v1.DeploymentSpec")
            ),
            "io.k8s.api.apps.v1.DeploymentSpec": {
                "type": "object",
                "required": ["selector", "template"],
                "properties": {
                    "replicas": {"type": "integer", "format": "int32"},
                    "paused": {"type": "boolean"},
                    "selector": _ref("io.k8s.apimachinery.pkg.apis.meta.v1.LabelSelector"),
                    "template": _ref("io.k8s.api.core.v1.PodTemplateSpec"),
                },
            },
            "io.k8s.api.core.v1.PodTemplateSpec": {
                "type": "object",
                "properties": {
                    "metadata": {"allOf": [{"$ref": META}], "default": {}},
                    "spec": _ref("io.k8s.api.core.v1.PodSpec"),
                },
            },
            "io.k8s.api.core.v1.PodSpec": {
                "type": "object",
                "required": ["containers"],
                "properties": {
                    "containers": {"type": "array", "items": _ref("io.k8s.api.core.v1.Container")},
                    "nodeSelector": {"type": "object", "additionalProperties": {"type": "string"}},
                },
            },
            "io.k8s.api.core.v1.Container": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string"},
                    "image": {"type": "string"},
                    "args": {"type": "array", "items": {"type": "string", "default": ""}},
                    "ports": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["containerPort"],
                            "properties": {"containerPort": {"type": "integer"}, "name": {"type": "string"}},
                        },
                    },
                },
            },
        }
    },
}

EXAMPLE_V1 = {
    "openapi": "3.0.0",
    "components": {
        "schemas": {
            "io.k8s.apimachinery.pkg.apis.meta.v1.ObjectMeta": OBJECT_META,
            "io.example.v1.Widget": _resource(
                "example.io",
                "v1",
                "Widget",
                spec={"type": "object", "x-kubernetes-preserve-unknown-fields": True},
                status={"type": "object", "nullable": True, "properties": {"ready": {"type": "boolean"}}},
            ),
            "io.example.v1.Tree": _resource(
                "example.io",
                "v1",
                "Tree",
                root=_ref("io.example.v1.Node"),
                leaves={
                    "type": "array",
                    "items": {"$ref": "#/components/schemas/io.example.v1.Node", "nullable": True},
                },
                branches={"type": "array", "items": {"$ref": "#/components/schemas/io.example.v1.Node"}},
            ),
            "io.example.v1.Node": {
                "type": "object",
                "required": ["value"],
                "properties": {
                    "value": {"type": "number"},
                    "children": {"type": "array", "items": _ref("io.example.v1.Node")},
                },
            },
        }
    },
}


class FakeSchemaFetcher:
    """
    Serves schema documents from memory and records every fetch.
    """

    endpoint = "https://kubernetes.test:6443"

    def __init__(self, documents: dict[str, dict[str, Any]], delay: float = 0.0) -> None:
        self.documents = documents
        self.delay = delay
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def fetch_schema(self, group_version: str) -> dict[str, Any] | None:
        with self._lock:
            self.calls.append(group_version)
        if self.delay:
            time.sleep(self.delay)
        return self.documents.get(group_version)


@pytest.fixture
def schema_documents() -> dict[str, dict[str, Any]]:
    return {"v1": CORE_V1, "apps/v1": APPS_V1, "example.io/v1": EXAMPLE_V1}


@pytest.fixture
def fetcher(schema_documents: dict[str, dict[str, Any]]) -> FakeSchemaFetcher:
    return FakeSchemaFetcher(schema_documents)


@pytest.fixture
def schemas(fetcher: FakeSchemaFetcher) -> SchemaSource:
    return SchemaSource(fetcher)


@pytest.fixture
def deployment() -> dict[str, Any]:
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": "redis", "namespace": "dev", "labels": {"app": "redis"}},
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": {"app": "redis"}},
            "template": {
                "metadata": {"labels": {"app": "redis"}},
                "spec": {
                    "containers": [
                        {"name": "redis", "image": "redis:7", "ports": [{"containerPort": 6379, "name": "redis"}]}
                    ]
                },
            },
        },
    }


@pytest.fixture
def service() -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": "web", "namespace": "dev"},
        "spec": {"selector": {"app": "web"}, "ports": [{"name": "http", "port": 80, "targetPort": "http"}]},
    }


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """
    A project with a `dev` environment and two components: `redis` (a valid Deployment) and `web` (a Service that
    lacks `spec.ports`).
    """

    (tmp_path / "kcheck.yaml").write_text(
        dedent(
            """
            parameters:
              defaults:
                replicas: 1
              components:
                redis:
                  image: redis:7
            environments:
              - name: dev
                server: https://kubernetes.test:6443
                namespace: dev
                parameters:
                  components:
                    redis:
                      replicas: 2
              - name: prod
                namespace: prod
            """
        )
    )
    components = tmp_path / "components"
    components.mkdir()
    (components / "redis.yaml").write_text(
        dedent(
            """
            apiVersion: apps/v1
            kind: Deployment
            metadata:
              name: redis
              namespace: dev
            spec:
              replicas: 2
              selector:
                matchLabels: {app: redis}
              template:
                metadata:
                  labels: {app: redis}
                spec:
                  containers:
                    - name: redis
                      image: redis:7
            """
        )
    )
    (components / "web.yaml.j2").write_text(
        dedent(
            """
            apiVersion: v1
            kind: Service
            metadata:
              name: web
              namespace: {{ env.namespace }}
            spec:
              selector:
                app: web
            """
        )
    )
    return tmp_path
