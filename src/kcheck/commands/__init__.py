"""
kcheck expands the components of an application for an environment into Kubernetes manifests and checks them against
the API schema of the environment's cluster, before anything is deployed.
"""

from enum import Enum
import sys
from loguru import logger
from typer import Option
from kcheck.tools.typer import new_typer


app = new_typer(help=__doc__)


from . import env  # noqa: E402
from . import show  # noqa: F401,E402
from . import validate  # noqa: F401,E402

app.add_typer(env.app)


class LogLevel(str, Enum):
    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@app.callback()
def _callback(
    log_level: LogLevel = Option(LogLevel.INFO, "--log-level", "-l", help="The log level to use."),
) -> None:
    logger.remove()
    logger.add(sys.stderr, level=log_level.name)


def main() -> None:
    app()
