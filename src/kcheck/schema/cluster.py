import threading
from typing import Any

import urllib3
from kubernetes.client.api_client import ApiClient
from kubernetes.client.exceptions import ApiException
from loguru import logger

from kcheck.schema import DiscoveryError

OPENAPI_V3_INDEX = "/openapi/v3"


class KubernetesSchemaFetcher:
    """
    Fetches OpenAPI v3 schema documents from the Kubernetes API server.

    The discovery index at `/openapi/v3` is read once. It lists the path of the schema document of every group version
    the server serves (`api/v1` for the core group, `apis/<group>/<version>` for all others).

    Args:
        client: The Kubernetes API client, configured with the credentials for the cluster.
        request_timeout: Timeout in seconds for every request made to the API server.
    """

    def __init__(self, client: ApiClient, request_timeout: float | None = None) -> None:
        self._client = client
        self._request_timeout = request_timeout
        self._lock = threading.Lock()
        self._paths: dict[str, str] | None = None

    @property
    def endpoint(self) -> str:
        return str(self._client.configuration.host)

    def fetch_schema(self, group_version: str) -> dict[str, Any] | None:
        key = f"apis/{group_version}" if "/" in group_version else f"api/{group_version}"
        path = self._get_paths().get(key)
        if path is None:
            return None
        return self._get(path)

    def _get_paths(self) -> dict[str, str]:
        with self._lock:
            if self._paths is None:
                index = self._get(OPENAPI_V3_INDEX)
                paths = index.get("paths")
                if not isinstance(paths, dict):
                    raise DiscoveryError(self.endpoint, f"'{OPENAPI_V3_INDEX}' did not return a discovery index")
                try:
                    self._paths = {key: value["serverRelativeURL"] for key, value in paths.items()}
                except (KeyError, TypeError):
                    raise DiscoveryError(self.endpoint, f"'{OPENAPI_V3_INDEX}' returned a malformed discovery index")
                logger.debug("Cluster '{}' publishes {} schema document(s)", self.endpoint, len(self._paths))
            return self._paths

    def _get(self, path: str) -> dict[str, Any]:
        logger.trace("GET {}{}", self.endpoint, path)
        try:
            data = self._client.call_api(
                path,
                "GET",
                header_params={"Accept": "application/json"},
                auth_settings=["BearerToken"],
                response_type="object",
                _return_http_data_only=True,
                _request_timeout=self._request_timeout,
            )
        except ApiException as exc:
            raise DiscoveryError(self.endpoint, f"GET {path} failed with status {exc.status}: {exc.reason}") from exc
        except urllib3.exceptions.HTTPError as exc:
            raise DiscoveryError(self.endpoint, f"GET {path} failed: {exc}") from exc

        if not isinstance(data, dict):
            raise DiscoveryError(self.endpoint, f"GET {path} did not return a JSON object")
        return data
