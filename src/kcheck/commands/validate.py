import sys
from pathlib import Path
from typing import Optional

from kubernetes.client.api_client import ApiClient
from kubernetes.client.configuration import Configuration
from kubernetes.config.config_exception import ConfigException
from kubernetes.config.incluster_config import load_incluster_config
from kubernetes.config.kube_config import load_kube_config
from loguru import logger
from typer import Exit, Option

from kcheck.project.config import Environment
from kcheck.schema import DiscoveryError
from kcheck.schema.cluster import KubernetesSchemaFetcher
from kcheck.schema.source import SchemaFetcher, SchemaSource
from kcheck.tools.typer import fatal_errors
from kcheck.validation import UnknownFieldPolicy
from kcheck.validation.report import ValidationRunner

from . import app
from .show import COMPONENT_OPTION, ENVIRONMENT_ARGUMENT, PROJECT_OPTION, load_and_expand


@app.command()
def validate(
    environment: str = ENVIRONMENT_ARGUMENT,
    components: list[str] = COMPONENT_OPTION,
    project: Optional[Path] = PROJECT_OPTION,
    unknown_fields: UnknownFieldPolicy = Option(
        UnknownFieldPolicy.ERROR,
        help="How to report fields that are not declared in the schema of their resource kind.",
    ),
    workers: int = Option(1, min=1, help="The number of manifests to validate concurrently."),
    kubeconfig: Optional[Path] = Option(
        None, envvar="KUBECONFIG", help="The Kubeconfig file to use. Defaults to `~/.kube/config`."
    ),
    context: Optional[str] = Option(None, help="The Kubeconfig context to use. Defaults to the current context."),
    in_cluster: bool = Option(
        False, help="Use the in-cluster Kubernetes configuration. The --kubeconfig and --context options are ignored."
    ),
    request_timeout: Optional[float] = Option(
        None, help="Timeout in seconds for every request made to the Kubernetes API server."
    ),
) -> None:
    """
    Check the manifests of an environment against the API schema of its cluster.

    When no component is specified, all components of the project are checked. This is the same set of manifests
    that would be deployed to the environment. Note that this command communicates with the cluster of the
    environment, so your Kubeconfig must grant access to it.
    """

    config, manifests = load_and_expand(environment, components, project)
    env = config.get_environment(environment)

    with fatal_errors(ConfigException, DiscoveryError):
        fetcher = new_schema_fetcher(env, kubeconfig, context, in_cluster, request_timeout)
        runner = ValidationRunner(SchemaSource(fetcher), unknown_fields=unknown_fields, workers=workers)
        success = runner.run(manifests, sys.stdout)

    if not success:
        raise Exit(1)


def new_schema_fetcher(
    environment: Environment,
    kubeconfig: Path | None,
    context: str | None,
    in_cluster: bool,
    request_timeout: float | None,
) -> SchemaFetcher:
    """
    Create a schema fetcher for the cluster of the *environment*, using the credentials of the Kubeconfig or the
    in-cluster configuration.
    """

    configuration = Configuration()
    if in_cluster:
        logger.info("Using in-cluster configuration.")
        load_incluster_config(client_configuration=configuration)
    else:
        logger.debug("Loading Kubeconfig '{}' (context: {})", kubeconfig or "default", context or "current")
        load_kube_config(
            config_file=str(kubeconfig) if kubeconfig else None,
            context=context,
            client_configuration=configuration,
        )

    if environment.server and environment.server.rstrip("/") != str(configuration.host).rstrip("/"):
        logger.warning(
            "Environment '{}' targets '{}', but the Kubernetes configuration points to '{}'. Using '{}'.",
            environment.name,
            environment.server,
            configuration.host,
            environment.server,
        )
        configuration.host = environment.server

    return KubernetesSchemaFetcher(ApiClient(configuration), request_timeout=request_timeout)
