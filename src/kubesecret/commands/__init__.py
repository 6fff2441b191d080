"""
kubesecret creates, updates and deletes Kubernetes secrets idempotently.
"""

from dataclasses import dataclass
from enum import Enum
import sys
from loguru import logger
from typer import Option
from kubesecret.clients import Client
from kubesecret.config import ProfileConfig
from kubesecret.tools.typer import new_typer


app = new_typer(help=__doc__)


class LogLevel(str, Enum):
    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class State:
    profile: str = ProfileConfig.DEFAULT_PROFILE
    """ The name of the connection profile selected on the command-line. """


state = State()


def connect() -> Client:
    """
    Create a client for the cluster of the profile that was selected on the command-line.
    """

    return ProfileConfig.load().connect(state.profile)


@app.callback()
def _callback(
    log_level: LogLevel = Option(LogLevel.INFO, "--log-level", "-l", help="The log level to use."),
    profile: str = Option(
        ProfileConfig.DEFAULT_PROFILE,
        "--profile",
        "-p",
        envvar="KUBESECRET_PROFILE",
        help=f"The connection profile from '{ProfileConfig.FILENAME}' to use.",
    ),
) -> None:
    logger.remove()
    logger.add(sys.stderr, level=log_level.name)
    state.profile = profile


from . import secret  # noqa: F401,E402
