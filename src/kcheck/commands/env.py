"""
Inspect the environments of a kcheck project.
"""

from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table
from typer import Option

from kcheck.project.config import ProjectConfig, ProjectConfigError
from kcheck.tools.typer import fatal_errors, new_typer


app = new_typer(name="env", help=__doc__)


@app.command("list")
def list_(
    project: Optional[Path] = Option(None, "--project", help="Path to the `kcheck.yaml` project file."),
) -> None:
    """
    List the environments defined in the project.
    """

    with fatal_errors(ProjectConfigError):
        config = ProjectConfig.load(project)

    table = Table()
    table.add_column("Name", style="cyan")
    table.add_column("Server")
    table.add_column("Namespace")
    table.add_column("Parameters", justify="right")

    for environment in sorted(config.config.environments, key=lambda env: env.name):
        parameters = environment.parameters
        count = len(parameters.defaults) + sum(len(values) for values in parameters.components.values())
        table.add_row(environment.name, environment.server or "", environment.namespace or "", str(count))

    Console().print(table)
