"""Broker exceptions.

Every fatal failure of a broker run is a :class:`BrokerError`. The pipeline
driver is the only place that converts one into a *Failed* event.
"""

from __future__ import annotations


class BrokerError(Exception):
    """Base exception for broker errors."""


class MissingRegistryError(BrokerError):
    """Plugin reference has no registry and no default registry is configured."""

    def __init__(self, plugin_id: str) -> None:
        self.plugin_id = plugin_id
        super().__init__(
            f"plugin '{plugin_id}' does not specify registry and no default is provided"
        )


class FetchFailedError(BrokerError):
    """Fetching a plugin meta.yaml failed."""

    def __init__(
        self,
        plugin_id: str,
        url: str,
        status: int | None = None,
        body: str = "",
        reason: str = "",
    ) -> None:
        self.plugin_id = plugin_id
        self.url = url
        self.status = status
        self.body = body
        if status is not None:
            message = (
                f"failed to fetch plugin meta.yaml for plugin '{plugin_id}' from URL '{url}': "
                f"status code {status}. Response body: {body}"
            )
        else:
            message = (
                f"failed to fetch plugin meta.yaml for plugin '{plugin_id}' from URL '{url}': "
                f"{reason}"
            )
        super().__init__(message)


class MalformedMetaError(BrokerError):
    """Downloaded meta.yaml could not be parsed."""

    def __init__(self, plugin_id: str, cause: str) -> None:
        self.plugin_id = plugin_id
        self.cause = cause
        super().__init__(
            f"failed to unmarshal downloaded meta.yaml for plugin '{plugin_id}': {cause}"
        )


class MetaValidationError(BrokerError):
    """Plugin meta violates apiVersion, type or field constraints."""

    def __init__(self, plugin_id: str, message: str) -> None:
        self.plugin_id = plugin_id
        super().__init__(message)


class MissingApiVersionError(MetaValidationError):
    def __init__(self, plugin_id: str) -> None:
        super().__init__(
            plugin_id, f"Plugin '{plugin_id}' is invalid. Field 'apiVersion' must be present"
        )


class UnknownApiVersionError(MetaValidationError):
    def __init__(self, plugin_id: str, value: str) -> None:
        self.value = value
        super().__init__(
            plugin_id,
            f"Plugin '{plugin_id}' is invalid. Field 'apiVersion' contains invalid version '{value}'",
        )


class MissingTypeError(MetaValidationError):
    def __init__(self, plugin_id: str) -> None:
        super().__init__(
            plugin_id, f"Type field is missing in meta information of plugin '{plugin_id}'"
        )


class UnknownTypeError(MetaValidationError):
    def __init__(self, plugin_id: str, plugin_type: str) -> None:
        self.plugin_type = plugin_type
        super().__init__(plugin_id, f"Type '{plugin_type}' of plugin '{plugin_id}' is unsupported")


class InvalidSpecError(MetaValidationError):
    """A spec field is present, missing or oversized for the plugin kind."""


class UnresolvableExtensionError(BrokerError):
    """Relative extension path found but no default registry to resolve it against."""

    def __init__(self, plugin_id: str, extension: str) -> None:
        self.plugin_id = plugin_id
        self.extension = extension
        super().__init__("cannot resolve relative extension path without default registry")


class InvalidExtensionError(BrokerError):
    """Extension entry is not a parsable URL."""

    def __init__(self, plugin_id: str, extension: str, cause: str) -> None:
        self.plugin_id = plugin_id
        self.extension = extension
        super().__init__(
            f"invalid extension URL '{extension}' in plugin '{plugin_id}': {cause}"
        )


class DownloadFailedError(BrokerError):
    """Downloading an extension artifact failed."""

    def __init__(self, url: str, status: int | None = None, reason: str = "") -> None:
        self.url = url
        self.status = status
        if status is not None:
            message = f"failed to download plugin from {url}: status code {status}"
        else:
            message = f"failed to download plugin from {url}: {reason}"
        super().__init__(message)


class RateLimitedError(BrokerError):
    """Marketplace kept answering 429 after every retry."""

    def __init__(self, plugin_id: str, retries: int) -> None:
        self.plugin_id = plugin_id
        self.retries = retries
        super().__init__(
            "VS Code marketplace access rate limit reached. Download of VS Code extension "
            f"for plugin '{plugin_id}' is blocked from current IP address. "
            f"{retries} retries failed. Giving up"
        )


class MarketplaceError(BrokerError):
    """Marketplace query failed or returned an unparsable payload."""

    def __init__(self, plugin_id: str, message: str) -> None:
        self.plugin_id = plugin_id
        super().__init__(message)


class MissingAssetError(MarketplaceError):
    """Marketplace reply does not contain a VSIX package."""

    def __init__(self, plugin_id: str) -> None:
        super().__init__(
            plugin_id,
            "VS Code extension archive information is not found in marketplace response "
            f"for plugin {plugin_id}",
        )


class ExtractionError(BrokerError):
    """Unpacking an archive failed."""

    def __init__(self, archive: str, cause: str) -> None:
        self.archive = archive
        super().__init__(f"failed to unpack archive '{archive}': {cause}")


class FilesystemError(BrokerError):
    """Creating directories or copying artifacts failed."""

    def __init__(self, operation: str, path: str, cause: str) -> None:
        self.operation = operation
        self.path = path
        super().__init__(f"failed to {operation} '{path}': {cause}")


class ArtifactCollisionError(BrokerError):
    """Two plugins ship the same extension artifact (strict mode only)."""

    def __init__(self, description: str) -> None:
        super().__init__(f"Extension collisions detected: {description}")


class InjectionLookupError(BrokerError):
    """Remote runtime injector could not be located in the editor plugin.

    Never fatal: the run proceeds without injection.
    """
