"""Meta validation and classification by plugin kind."""

from __future__ import annotations

from plugin_broker.errors import (
    InvalidSpecError,
    MissingApiVersionError,
    MissingTypeError,
    UnknownApiVersionError,
    UnknownTypeError,
)
from plugin_broker.model import API_VERSION, PluginKind, PluginMeta


def validate_meta(meta: PluginMeta) -> None:
    """Check apiVersion, type and the per-kind spec constraints.

    Raises:
        MetaValidationError: Describing the first violation
    """
    if not meta.api_version:
        raise MissingApiVersionError(meta.id)
    if meta.api_version != API_VERSION:
        raise UnknownApiVersionError(meta.id, meta.api_version)

    if not meta.type:
        raise MissingTypeError(meta.id)
    kind = meta.kind
    if kind is None:
        raise UnknownTypeError(meta.id, meta.type)

    spec = meta.spec
    if kind.is_extension:
        if not spec.extensions:
            raise InvalidSpecError(
                meta.id, f"Plugin '{meta.id}' is invalid. Field 'spec.extensions' must not be empty"
            )
        if len(spec.containers) > 1:
            raise InvalidSpecError(
                meta.id,
                f"Plugin '{meta.id}' is invalid. Containers list 'spec.containers' must not "
                f"contain more than 1 container, but '{len(spec.containers)}' found",
            )
        if spec.endpoints:
            raise InvalidSpecError(
                meta.id,
                f"Plugin '{meta.id}' is invalid. Setting endpoints at 'spec.endpoints' is not "
                f"allowed in plugins of type '{meta.type}'",
            )
    else:
        if spec.extensions:
            raise InvalidSpecError(
                meta.id,
                f"Plugin '{meta.id}' is invalid. Field 'spec.extensions' is not allowed in "
                f"plugin of type '{meta.type}'",
            )
        if not spec.containers:
            raise InvalidSpecError(
                meta.id, f"Plugin '{meta.id}' is invalid. Field 'spec.containers' must not be empty"
            )


def validate_metas(metas: list[PluginMeta]) -> None:
    """Validate every meta; the first failure rejects the whole set."""
    for meta in metas:
        validate_meta(meta)


def classify_metas(metas: list[PluginMeta]) -> tuple[list[PluginMeta], list[PluginMeta]]:
    """Split metas into server-resolved and extension-bearing sets.

    Input order is preserved within each set.

    Returns:
        Tuple of (server-resolved metas, extension metas)
    """
    server: list[PluginMeta] = []
    extensions: list[PluginMeta] = []
    for meta in metas:
        if not meta.type:
            raise MissingTypeError(meta.id)
        kind = PluginKind.parse(meta.type)
        if kind is None:
            raise UnknownTypeError(meta.id, meta.type)
        if kind.is_extension:
            extensions.append(meta)
        else:
            server.append(meta)
    return server, extensions
