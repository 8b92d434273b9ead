from collections.abc import Iterator, Sequence
from typing import Literal, overload
from pathlib import Path


@overload
def find_config_file(filename: str, cwd: Path | None = None, required: Literal[False] = False) -> Path | None: ...


@overload
def find_config_file(filename: str, cwd: Path | None = None, required: Literal[True] = True) -> Path: ...


def find_config_file(filename: str, cwd: Path | None = None, required: bool = True) -> Path | None:
    """
    Find a file with the given *filename* in the given *cwd* or any of its parent directories.
    """

    if cwd is None:
        cwd = Path.cwd()
    cwd = cwd.absolute()

    for directory in [cwd] + list(cwd.parents):
        file = directory / filename
        if file.is_file():
            return file

    if required:
        raise FileNotFoundError(f"Could not find '{filename}' in '{cwd}' or any of its parent directories.")

    return None


def iter_files(directory: Path, suffixes: Sequence[str], skip_prefixes: Sequence[str] = ("_", ".")) -> Iterator[Path]:
    """
    Recursively yield the files below *directory* whose name ends with one of the *suffixes*. Files and directories
    whose name starts with one of the *skip_prefixes* are ignored, and so is everything below such a directory.
    """

    for item in sorted(directory.iterdir()):
        if item.name.startswith(tuple(skip_prefixes)):
            continue
        if item.is_dir():
            yield from iter_files(item, suffixes, skip_prefixes)
        elif item.is_file() and item.name.endswith(tuple(suffixes)):
            yield item


def strip_suffixes(path: str, suffixes: Sequence[str]) -> str:
    """
    Remove the longest matching suffix of *suffixes* from *path*.
    """

    for suffix in sorted(suffixes, key=len, reverse=True):
        if path.endswith(suffix):
            return path[: -len(suffix)]
    return path
