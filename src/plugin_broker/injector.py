"""Propagation of the editor's remote runtime injector to extension sidecars."""

from __future__ import annotations

import logging

from plugin_broker.errors import InjectionLookupError
from plugin_broker.model import PluginDescriptor, PluginKind, RuntimeInjection

logger = logging.getLogger(__name__)

DEFAULT_EDITOR_NAME = "che-theia"
INJECTOR_CONTAINER_NAME = "remote-runtime-injector"
EXECUTABLE_ENV = "PLUGIN_REMOTE_ENDPOINT_EXECUTABLE"
VOLUME_NAME_ENV = "REMOTE_ENDPOINT_VOLUME_NAME"


def find_editor(descriptors: list[PluginDescriptor]) -> PluginDescriptor:
    """Return the default editor that ships init containers.

    Raises:
        InjectionLookupError: If there is none
    """
    for d in descriptors:
        if (
            d.kind is PluginKind.SERVER_EDITOR
            and d.name.lower() == DEFAULT_EDITOR_NAME
            and d.init_containers
        ):
            return d
    raise InjectionLookupError(f"Editor '{DEFAULT_EDITOR_NAME}' with init containers not found")


def get_runtime_injection(descriptors: list[PluginDescriptor]) -> RuntimeInjection:
    """Extract the injector executable and volume from the editor.

    Raises:
        InjectionLookupError: If the editor, the injector container, its env or
            its volume cannot be found
    """
    editor = find_editor(descriptors)

    injector = next((c for c in editor.init_containers if c.name == INJECTOR_CONTAINER_NAME), None)
    if injector is None:
        raise InjectionLookupError(
            f"Init container '{INJECTOR_CONTAINER_NAME}' not found in editor '{editor.id}'"
        )

    executable = next((e for e in injector.env if e.name == EXECUTABLE_ENV), None)
    if executable is None or not executable.value:
        raise InjectionLookupError(f"Env var '{EXECUTABLE_ENV}' is not set in '{injector.name}'")

    volume_name = next((e.value for e in injector.env if e.name == VOLUME_NAME_ENV), "")
    if not volume_name:
        raise InjectionLookupError(f"Env var '{VOLUME_NAME_ENV}' is not set in '{injector.name}'")

    volume = next((v for v in injector.volumes if v.name == volume_name), None)
    if volume is None:
        raise InjectionLookupError(
            f"Volume '{volume_name}' not found in init container '{injector.name}'"
        )

    return RuntimeInjection(
        volume=volume.model_copy(),
        env=executable.model_copy(),
        command=[executable.value],
    )


def inject(descriptor: PluginDescriptor, injection: RuntimeInjection) -> None:
    """Append the injection env and volume to the descriptor's sidecar."""
    if not descriptor.containers:
        return
    container = descriptor.containers[0]
    container.env.append(injection.env.model_copy())
    container.volumes.append(injection.volume.model_copy())
