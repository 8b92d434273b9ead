from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import jinja2
import yaml
from loguru import logger
from structured_templates import TemplateEngine

JINJA_SUFFIX = ".j2"
YAML_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class ComponentLoader(yaml.SafeLoader):
    """
    A YAML loader that keeps unquoted timestamps (such as `2024-01-01`) as strings, like the Kubernetes API server
    does when it converts YAML to JSON.
    """


ComponentLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != YAML_TIMESTAMP_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


class Namespace(dict[str, Any]):
    """
    A dictionary whose keys can also be read as attributes, so that `${{ params.name }}` works in structured
    templates the same way `{{ params.name }}` works in Jinja2 templates.
    """

    def __getattr__(self, name: str) -> Any:
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name) from None


def to_namespace(value: Any) -> Any:
    """
    Recursively convert the mappings in *value* to [Namespace]s.
    """

    if isinstance(value, Mapping):
        return Namespace({key: to_namespace(item) for key, item in value.items()})
    if isinstance(value, list):
        return [to_namespace(item) for item in value]
    return value


def to_plain(value: Any) -> Any:
    """
    Recursively convert [Namespace]s in *value* back to plain dictionaries.
    """

    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    return value


@dataclass
class EvaluationError(Exception):
    """
    Raised by an [Evaluator] if a component cannot be evaluated.
    """

    path: Path
    message: str

    def __str__(self) -> str:
        return f"Failed to evaluate '{self.path}': {self.message}"


class Evaluator(Protocol):
    """
    Turns a component file into documents.
    """

    def evaluate(self, path: Path, parameters: Mapping[str, Any]) -> list[Any]:
        """
        Evaluate the component at *path* with the given *parameters*.

        Raises:
            EvaluationError: If the component cannot be read, rendered or parsed.
        """


class TemplateEvaluator:
    """
    The default evaluator. Components with a `.j2` suffix are rendered with Jinja2 and then parsed as a YAML stream.
    Other components are parsed as a YAML stream and then evaluated with the `structured-templates` engine.

    Templates can access the parameters as `params`, plus any additional *globals* (such as the environment).
    """

    def __init__(self, globals_: Mapping[str, Any] | None = None) -> None:
        self._globals = dict(globals_ or {})

    def evaluate(self, path: Path, parameters: Mapping[str, Any]) -> list[Any]:
        try:
            source = path.read_text()
        except OSError as exc:
            raise EvaluationError(path, str(exc)) from exc

        if path.name.endswith(JINJA_SUFFIX):
            return self._evaluate_jinja(path, source, parameters)
        return self._evaluate_yaml(path, source, parameters)

    def _evaluate_jinja(self, path: Path, source: str, parameters: Mapping[str, Any]) -> list[Any]:
        env = jinja2.Environment(
            undefined=jinja2.StrictUndefined,
            loader=jinja2.FileSystemLoader(path.parent),
            keep_trailing_newline=True,
        )
        env.globals.update(self._globals)
        env.globals["params"] = dict(parameters)

        logger.trace("Rendering Jinja2 template '{}'", path)
        try:
            rendered = env.from_string(source).render()
        except jinja2.TemplateError as exc:
            raise EvaluationError(path, f"{type(exc).__name__}: {exc}") from exc

        return _load_yaml_stream(path, rendered)

    def _evaluate_yaml(self, path: Path, source: str, parameters: Mapping[str, Any]) -> list[Any]:
        documents = _load_yaml_stream(path, source)
        scope = {**self._globals, "params": parameters}
        engine = TemplateEngine(globals_={name: to_namespace(value) for name, value in scope.items()})

        logger.trace("Evaluating structured templates in '{}'", path)
        try:
            return to_plain(list(engine.evaluate(documents)))
        except Exception as exc:
            raise EvaluationError(path, f"{type(exc).__name__}: {exc}") from exc


def _load_yaml_stream(path: Path, text: str) -> list[Any]:
    try:
        return list(yaml.load_all(text, Loader=ComponentLoader))
    except yaml.YAMLError as exc:
        raise EvaluationError(path, f"Invalid YAML: {exc}") from exc
