"""Wiring of extension sidecar containers.

Each extension sidecar gets the shared plugins volume, an env var pointing
at its unpacked extensions and, unless it runs in the editor pod's
localhost network, a private endpoint the editor connects to.
"""

from __future__ import annotations

import re

from plugin_broker.model import Endpoint, EnvVar, ExposedPort, PluginDescriptor, Volume
from plugin_broker.randomness import Random

PLUGINS_VOLUME_NAME = "plugins"
PLUGINS_MOUNT_PATH = "/plugins"
SIDECARS_DIR = "sidecars"

ENDPOINT_PORT_ENV = "THEIA_PLUGIN_ENDPOINT_PORT"
PLUGINS_ENV = "THEIA_PLUGINS"
REMOTE_ENDPOINT_ENV_PREFIX = "THEIA_PLUGIN_REMOTE_ENDPOINT_"

ENDPOINT_NAME_LENGTH = 10
MIN_PORT = 4000
MAX_PORT = 10000

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_]")


def sanitize_key(value: str) -> str:
    return _UNSAFE_KEY_CHARS.sub("_", value)


def plugin_unique_key(publisher: str, name: str, version: str) -> str:
    """Filesystem and env-var safe key for a plugin.

    Empty parts are skipped, so ``ms-kubernetes-tools`` and
    ``vscode-kubernetes-tools`` without a version become
    ``ms_kubernetes_tools_vscode_kubernetes_tools``.
    """
    parts = [p for p in (publisher, name, version) if p]
    return sanitize_key("_".join(parts))


def descriptor_unique_key(descriptor: PluginDescriptor) -> str:
    return plugin_unique_key(descriptor.publisher, descriptor.name, descriptor.version)


def sidecar_plugins_path(unique_key: str) -> str:
    """Path of a sidecar's extension directory inside the containers."""
    return f"{PLUGINS_MOUNT_PATH}/{SIDECARS_DIR}/{unique_key}"


def add_plugin_runner_requirements(
    descriptor: PluginDescriptor, rand: Random, localhost: bool = False
) -> PluginDescriptor:
    """Wire the single container of an extension descriptor in place.

    Descriptors without a container are returned untouched.

    Args:
        descriptor: Extension-kind descriptor
        rand: Source of the endpoint name and port
        localhost: Reach the sidecar over localhost instead of a private endpoint

    Returns:
        The same descriptor, for chaining
    """
    if not descriptor.containers:
        return descriptor

    container = descriptor.containers[0]
    key = descriptor_unique_key(descriptor)

    container.volumes.append(Volume(name=PLUGINS_VOLUME_NAME, mount_path=PLUGINS_MOUNT_PATH))
    container.mount_sources = True

    endpoint_name = rand.string(ENDPOINT_NAME_LENGTH)
    port = rand.int_from_range(MIN_PORT, MAX_PORT)
    host = "localhost" if localhost else endpoint_name

    if not localhost:
        container.ports.append(ExposedPort(exposed_port=port))
        descriptor.endpoints.append(Endpoint(name=endpoint_name, public=False, target_port=port))

    container.env.append(EnvVar(name=ENDPOINT_PORT_ENV, value=str(port)))
    descriptor.workspace_env.append(
        EnvVar(name=REMOTE_ENDPOINT_ENV_PREFIX + key, value=f"ws://{host}:{port}")
    )
    container.env.append(EnvVar(name=PLUGINS_ENV, value=f"local-dir://{sidecar_plugins_path(key)}"))
    return descriptor
