from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from kcheck.tools.fs import find_config_file


@dataclass
class ProjectConfigError(Exception):
    """
    Raised when the project configuration is missing, invalid or does not contain a requested environment.
    """

    file: Path | None
    message: str

    def __str__(self) -> str:
        if self.file is None:
            return self.message
        return f"{self.file}: {self.message}"


@dataclass(kw_only=True, frozen=True)
class Parameters:
    """
    Template parameters, split into defaults that apply to every component and overrides for individual components.
    """

    defaults: dict[str, Any] = field(default_factory=dict)
    """ Parameters passed to every component. """

    components: dict[str, dict[str, Any]] = field(default_factory=dict)
    """ Parameters passed only to the component with the matching name. They take precedence over the defaults. """

    def for_component(self, name: str) -> dict[str, Any]:
        return deep_merge(self.defaults, self.components.get(name, {}))


@dataclass(kw_only=True, frozen=True)
class Environment:
    """
    A named deployment target.
    """

    name: str
    """ The unique name of the environment. """

    server: str | None = None
    """
    The Kubernetes API server of the environment. If set, it overrides the server of the active Kubeconfig context.
    """

    namespace: str | None = None
    """ The default namespace of the environment. Exposed to templates, it is not injected into manifests. """

    parameters: Parameters = field(default_factory=Parameters)
    """ Parameter overrides that take precedence over the project parameters. """


@dataclass
class Project:
    """
    Configuration for a kcheck project that is stored in a `kcheck.yaml` file.
    """

    components: Path = Path("components")
    """ Directory that contains the component manifests. Relative to the project file. """

    parameters: Parameters = field(default_factory=Parameters)
    """ Project-wide template parameters. """

    environments: list[Environment] = field(default_factory=list)
    """ The environments that components can be expanded for. """


@dataclass
class ProjectConfig:
    """
    Wrapper for the project configuration file.
    """

    FILENAME = "kcheck.yaml"

    file: Path
    config: Project

    @property
    def directory(self) -> Path:
        return self.file.parent

    @property
    def components_dir(self) -> Path:
        return self.directory / self.config.components

    def get_environment(self, name: str) -> Environment:
        """
        Look up an environment by name.
        """

        for environment in self.config.environments:
            if environment.name == name:
                return environment

        available = ", ".join(env.name for env in self.config.environments) or "none"
        raise ProjectConfigError(
            self.file,
            f"Environment '{name}' is not defined (available: {available}); use `kcheck env list` to see "
            "available environments",
        )

    def parameters_for(self, environment: Environment, component: str) -> dict[str, Any]:
        """
        Return the parameters for a component in the given environment. Environment parameters take precedence over
        project parameters, and component parameters take precedence over defaults on the same level.
        """

        return deep_merge(
            self.config.parameters.for_component(component),
            environment.parameters.for_component(component),
        )

    @staticmethod
    def load(file: Path | None = None, /, *, cwd: Path | None = None) -> "ProjectConfig":
        """
        Load the project configuration from the given file, or search for a `kcheck.yaml` in *cwd* (defaults to the
        current working directory) and its parents.
        """

        from databind.core import ConversionError
        from databind.json import load as deser
        from yaml import YAMLError, safe_load

        if file is None:
            try:
                file = find_config_file(ProjectConfig.FILENAME, cwd)
            except FileNotFoundError as exc:
                raise ProjectConfigError(None, str(exc)) from exc

        logger.debug("Loading project configuration from '{}'", file)
        try:
            project = deser(safe_load(file.read_text()) or {}, Project, filename=str(file))
        except (OSError, YAMLError, ConversionError) as exc:
            raise ProjectConfigError(file, str(exc)) from exc

        seen: set[str] = set()
        for environment in project.environments:
            if environment.name in seen:
                raise ProjectConfigError(file, f"Environment '{environment.name}' is defined more than once")
            seen.add(environment.name)

        config = ProjectConfig(file, project)
        if not config.components_dir.is_dir():
            logger.warning("Component directory '{}' does not exist", config.components_dir)
        return config


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Merge *override* into a copy of *base*. Nested mappings are merged recursively, any other value in *override*
    replaces the value in *base*.
    """

    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result
