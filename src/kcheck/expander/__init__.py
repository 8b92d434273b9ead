"""
This package turns the components of a project into concrete Kubernetes manifests for an environment.
"""

from collections.abc import Collection, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from kcheck.expander.evaluator import EvaluationError, Evaluator, TemplateEvaluator
from kcheck.project.config import Environment, ProjectConfig
from kcheck.tools.fs import iter_files, strip_suffixes
from kcheck.tools.types import Manifest, Manifests

COMPONENT_SUFFIXES = (".yaml", ".yml", ".yaml.j2", ".yml.j2")

__all__ = [
    "Component",
    "EvaluationError",
    "Evaluator",
    "ExpansionError",
    "ObjectExpander",
    "TemplateEvaluator",
    "UnknownComponentError",
    "discover_components",
    "expand",
]


@dataclass
class ExpansionError(Exception):
    """
    Raised when the manifests for an environment cannot be expanded. No manifests are returned in that case.
    """

    component: str | None
    message: str

    def __str__(self) -> str:
        if self.component is None:
            return self.message
        return f"Error expanding component '{self.component}': {self.message}"


@dataclass
class UnknownComponentError(ExpansionError):
    """
    Raised when a component selector names components that do not exist in the project.
    """

    component: str | None = None
    message: str = ""
    names: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return f"Unknown component(s): {', '.join(map(repr, self.names))}"


@dataclass(frozen=True)
class Component:
    """
    A file below the component directory that evaluates to zero or more manifests.
    """

    name: str
    """ The path of the file relative to the component directory, with the file suffix removed. """

    path: Path


def discover_components(directory: Path) -> list[Component]:
    """
    Find all components below *directory*, sorted by name.
    """

    if not directory.is_dir():
        return []

    components: dict[str, Component] = {}
    for file in iter_files(directory, COMPONENT_SUFFIXES):
        name = strip_suffixes(file.relative_to(directory).as_posix(), COMPONENT_SUFFIXES)
        if name in components:
            raise ExpansionError(
                name, f"Component is defined by more than one file: '{components[name].path}' and '{file}'"
            )
        components[name] = Component(name, file)

    return [components[name] for name in sorted(components)]


class ObjectExpander:
    """
    Expands the components of a project into manifests.

    Args:
        project: The project to expand components of.
        evaluator: The evaluator to turn component files into documents. If not set, a [TemplateEvaluator] is
            created for every expansion, with the environment exposed to templates as `env`.
    """

    def __init__(self, project: ProjectConfig, evaluator: Evaluator | None = None) -> None:
        self._project = project
        self._evaluator = evaluator

    def components(self) -> list[Component]:
        return discover_components(self._project.components_dir)

    def select(self, selector: Collection[str] = ()) -> list[Component]:
        """
        Return the components matching the *selector* in order of their name. An empty selector selects all
        components.

        Raises:
            UnknownComponentError: If the selector names a component that does not exist.
        """

        components = self.components()
        if not selector:
            return components

        known = {component.name for component in components}
        unknown = sorted(set(selector) - known)
        if unknown:
            raise UnknownComponentError(names=unknown)

        return [component for component in components if component.name in selector]

    def expand(self, environment: Environment, selector: Collection[str] = ()) -> Manifests:
        """
        Evaluate the selected components for the *environment* and return the manifests they produce, in component
        order and in the order each component produces them.

        Raises:
            ExpansionError: If a component cannot be evaluated or produces something that is not a manifest.
        """

        components = self.select(selector)

        result = Manifests([])
        for component in components:
            evaluator = self._evaluator_for(environment, component)
            parameters = self._project.parameters_for(environment, component.name)
            logger.debug("Evaluating component '{}' from '{}'", component.name, component.path)
            try:
                documents = evaluator.evaluate(component.path, parameters)
            except EvaluationError as exc:
                raise ExpansionError(component.name, str(exc)) from exc

            manifests = list(_flatten(component, documents))
            logger.debug("Component '{}' produced {} manifest(s)", component.name, len(manifests))
            result.extend(manifests)

        logger.info(
            "Expanded {} manifest(s) from {} component(s) for environment '{}'",
            len(result),
            len(components),
            environment.name,
        )
        return result

    def _evaluator_for(self, environment: Environment, component: Component) -> Evaluator:
        if self._evaluator is not None:
            return self._evaluator
        return TemplateEvaluator(
            globals_={
                "env": {"name": environment.name, "server": environment.server, "namespace": environment.namespace},
                "component": {"name": component.name},
            }
        )


def expand(
    environment: Environment | str,
    selector: Collection[str] = (),
    working_dir: Path | None = None,
    evaluator: Evaluator | None = None,
) -> Manifests:
    """
    Load the project from *working_dir* (or its parents) and expand the selected components for the *environment*.
    """

    project = ProjectConfig.load(cwd=working_dir)
    if isinstance(environment, str):
        environment = project.get_environment(environment)
    return ObjectExpander(project, evaluator).expand(environment, selector)


def _flatten(component: Component, documents: Iterable[Any]) -> Iterable[Manifest]:
    for document in documents:
        if document is None:
            continue
        if isinstance(document, list):
            yield from _flatten(component, document)
        elif not isinstance(document, dict):
            raise ExpansionError(
                component.name, f"Expected a mapping for a manifest, got {type(document).__name__}: {document!r}"
            )
        elif document.get("kind") == "List" and isinstance(document.get("items"), list):
            yield from _flatten(component, document["items"])
        else:
            yield Manifest(document)
