from pathlib import Path
from typing import Optional

import yaml
from loguru import logger
from typer import Argument, Option

from kcheck.expander import ExpansionError, ObjectExpander
from kcheck.project.config import ProjectConfig, ProjectConfigError
from kcheck.tools.types import Manifests
from kcheck.tools.typer import fatal_errors

from . import app

ENVIRONMENT_ARGUMENT = Argument(..., help="The environment to expand components for; see `kcheck env list`.")
COMPONENT_OPTION = Option(
    [],
    "--component",
    "-c",
    help="Only expand the named component. Can be repeated. All components are expanded if not set.",
)
PROJECT_OPTION = Option(
    None,
    "--project",
    help="Path to the `kcheck.yaml` project file. If not set, it is searched in the current directory and its parents.",
)


def load_and_expand(
    environment: str, components: list[str], project: Optional[Path]
) -> tuple[ProjectConfig, Manifests]:
    """
    Load the project and expand the selected components for the named environment. Exits the command on failure.
    """

    with fatal_errors(ProjectConfigError, ExpansionError):
        config = ProjectConfig.load(project)
        env = config.get_environment(environment)
        logger.debug("Expanding components in '{}' for environment '{}'", config.components_dir, env.name)
        manifests = ObjectExpander(config).expand(env, components)
    return config, manifests


@app.command()
def show(
    environment: str = ENVIRONMENT_ARGUMENT,
    components: list[str] = COMPONENT_OPTION,
    project: Optional[Path] = PROJECT_OPTION,
) -> None:
    """
    Print the manifests that the components expand to for an environment, without contacting the cluster.
    """

    _, manifests = load_and_expand(environment, components, project)
    for manifest in manifests:
        print("---")
        print(yaml.safe_dump(manifest), end="")
