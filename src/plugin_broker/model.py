"""Pydantic models for plugin metadata, descriptors and their parts.

Field names are snake_case in Python and camelCase on the wire (meta.yaml,
tooling JSON). Both spellings are accepted on input.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

API_VERSION = "v2"


class PluginKind(str, Enum):
    """Plugin types understood by the broker.

    Values are the lowercase type strings used in registry metadata.
    """

    SERVER_PLUGIN = "che plugin"
    SERVER_EDITOR = "che editor"
    THEIA_EXTENSION = "theia plugin"
    VSCODE_EXTENSION = "vs code extension"

    @classmethod
    def parse(cls, value: str) -> PluginKind | None:
        """Case-insensitive lookup; returns None for unknown types."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    @property
    def is_extension(self) -> bool:
        return self in (PluginKind.THEIA_EXTENSION, PluginKind.VSCODE_EXTENSION)


class WireModel(BaseModel):
    """Base for documents exchanged with registries and the controller."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # YAML "key:" with no value means "use the default"
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class EnvVar(WireModel):
    """Environment variable of a container or the workspace."""

    name: str
    value: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        if isinstance(value, bool):
            return str(value).lower()
        return str(value)


class Volume(WireModel):
    """Named volume mounted into a container."""

    name: str
    mount_path: str = Field(default="", alias="mountPath")


class ExposedPort(WireModel):
    exposed_port: int = Field(alias="exposedPort")


class Endpoint(WireModel):
    """Network endpoint exposed by a plugin container."""

    name: str
    public: bool = False
    target_port: int = Field(alias="targetPort")
    attributes: dict[str, Any] = Field(default_factory=dict)


class EditorCommand(WireModel):
    name: str = ""
    working_dir: str = Field(default="", alias="workingDir")
    command: list[str] = Field(default_factory=list)


class Container(WireModel):
    """Sidecar container definition."""

    name: str = ""
    image: str = ""
    env: list[EnvVar] = Field(default_factory=list)
    commands: list[EditorCommand] = Field(default_factory=list)
    volumes: list[Volume] = Field(default_factory=list)
    ports: list[ExposedPort] = Field(default_factory=list)
    memory_limit: str = Field(default="", alias="memoryLimit")
    mount_sources: bool = Field(default=False, alias="mountSources")
    command: list[str] = Field(default_factory=list)
    args: list[str] = Field(default_factory=list)


class PluginSpec(WireModel):
    """The ``spec`` section of a plugin meta.yaml."""

    extensions: list[str] = Field(default_factory=list)
    containers: list[Container] = Field(default_factory=list)
    init_containers: list[Container] = Field(default_factory=list, alias="initContainers")
    endpoints: list[Endpoint] = Field(default_factory=list)
    workspace_env: list[EnvVar] = Field(default_factory=list, alias="workspaceEnv")


class PluginMeta(WireModel):
    """Plugin metadata document as served by a plugin registry."""

    api_version: str = Field(default="", alias="apiVersion")
    id: str = ""
    type: str = ""
    publisher: str = ""
    name: str = ""
    version: str = ""
    display_name: str = Field(default="", alias="displayName")
    title: str = ""
    description: str = ""
    icon: str = ""
    url: str = ""
    category: str = ""
    spec: PluginSpec = Field(default_factory=PluginSpec)

    @field_validator("version", "api_version", mode="before")
    @classmethod
    def _numeric_to_str(cls, value: Any) -> str:
        # Unquoted YAML versions like 1.0 arrive as floats
        return str(value)

    @property
    def kind(self) -> PluginKind | None:
        return PluginKind.parse(self.type)


class PluginDescriptor(WireModel):
    """Finalised plugin configuration returned to the workspace controller."""

    id: str
    name: str = ""
    publisher: str = ""
    version: str = ""
    type: str = ""
    containers: list[Container] = Field(default_factory=list)
    init_containers: list[Container] = Field(default_factory=list, alias="initContainers")
    endpoints: list[Endpoint] = Field(default_factory=list)
    workspace_env: list[EnvVar] = Field(default_factory=list, alias="workspaceEnv")

    @property
    def kind(self) -> PluginKind | None:
        return PluginKind.parse(self.type)


class PluginReference(WireModel):
    """Identifies a plugin in a registry.

    ``reference`` is a direct URL to a meta.yaml and takes precedence over
    registry composition.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: str
    registry: str = ""
    reference: str = ""

    @classmethod
    def parse(cls, value: str) -> PluginReference:
        """Parse ``[<registry>/]<publisher>/<name>/<version>``.

        A value ending in ``meta.yaml`` is taken as a direct reference.
        """
        value = value.strip()
        if value.endswith("meta.yaml"):
            parts = value.rstrip("/").split("/")
            plugin_id = "/".join(parts[-4:-1]) if len(parts) >= 4 else value
            return cls(id=plugin_id, reference=value)

        parts = value.rstrip("/").split("/")
        if len(parts) < 3 or not all(parts[-3:]):
            raise ValueError(
                f"Invalid plugin reference '{value}': expected "
                "'[<registry>/]<publisher>/<name>/<version>'"
            )
        registry = "/".join(parts[:-3])
        if registry and "://" not in registry:
            raise ValueError(f"Invalid plugin reference '{value}': registry must include a scheme")
        return cls(id="/".join(parts[-3:]), registry=registry)


class RuntimeID(WireModel):
    """Identity of the workspace runtime the broker works for."""

    workspace: str = Field(default="", alias="workspaceId")
    environment: str = Field(default="", alias="envName")
    owner_id: str = Field(default="", alias="ownerId")

    @classmethod
    def parse(cls, value: str) -> RuntimeID:
        """Parse ``workspace:environment:ownerId``."""
        parts = value.split(":")
        if len(parts) != 3:
            raise ValueError("Expected runtime id to be in format 'workspace:env:ownerId'")
        return cls(workspace=parts[0], environment=parts[1], owner_id=parts[2])


class RuntimeInjection(BaseModel):
    """Editor-provided runtime wiring added to every extension sidecar."""

    volume: Volume
    env: EnvVar
    command: list[str] = Field(default_factory=list)


def descriptor_from_meta(meta: PluginMeta) -> PluginDescriptor:
    """Project a meta onto the descriptor shape.

    The result owns deep copies of the meta's containers, endpoints and env,
    so later wiring never touches the meta.
    """
    spec = meta.spec.model_copy(deep=True)
    return PluginDescriptor(
        id=meta.id,
        name=meta.name,
        publisher=meta.publisher,
        version=meta.version,
        type=meta.type,
        containers=spec.containers,
        init_containers=spec.init_containers,
        endpoints=spec.endpoints,
        workspace_env=spec.workspace_env,
    )
