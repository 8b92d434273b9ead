from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from loguru import logger
from typer import Exit, Typer


def new_typer(**kwargs: Any) -> Typer:
    return Typer(no_args_is_help=True, pretty_exceptions_enable=False, **kwargs)


@contextmanager
def fatal_errors(*types: type[BaseException]) -> Iterator[None]:
    """
    Log exceptions of the given *types* as a short diagnostic and exit the command with status code 1. Any other
    exception propagates as usual.
    """

    try:
        yield
    except types as exc:
        logger.error("{}", exc)
        raise Exit(1)
