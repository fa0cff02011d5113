"""Extension artifact resolution.

Entries of ``spec.extensions`` are either archive URLs or marketplace
identifiers of the form ``vscode:extension/<publisher>.<name>``. Identifiers
are turned into download URLs by querying the VS Code marketplace.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from urllib.parse import urljoin, urlparse

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from plugin_broker.errors import (
    InvalidExtensionError,
    MarketplaceError,
    MissingAssetError,
    UnresolvableExtensionError,
)
from plugin_broker.model import PluginMeta
from plugin_broker.retry import RateLimitPolicy

logger = logging.getLogger(__name__)

MARKETPLACE_SCHEME = "vscode:extension/"
VSIX_ASSET_TYPE = "Microsoft.VisualStudio.Services.VSIXPackage"
MARKETPLACE_HEADERS = {
    "Accept": "application/json;api-version=3.0-preview.1",
    "Content-Type": "application/json",
}


class _MarketplaceFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    asset_type: str = Field(default="", alias="assetType")
    source: str = ""


class _MarketplaceVersion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: str = ""
    files: list[_MarketplaceFile] = Field(default_factory=list)


class _MarketplaceExtension(BaseModel):
    model_config = ConfigDict(extra="ignore")

    versions: list[_MarketplaceVersion] = Field(default_factory=list)


class _MarketplaceResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    extensions: list[_MarketplaceExtension] = Field(default_factory=list)


class MarketplaceResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    results: list[_MarketplaceResult] = Field(default_factory=list)


def is_marketplace_id(extension: str) -> bool:
    return extension.startswith(MARKETPLACE_SCHEME)


def marketplace_query(extension_name: str) -> dict:
    """Extension query body selecting the latest VSIX of one extension."""
    return {
        "filters": [
            {
                "criteria": [{"filterType": 7, "value": extension_name}],
                "pageNumber": 1,
                "pageSize": 1,
                "sortBy": 0,
                "sortOrder": 0,
            }
        ],
        "assetTypes": [VSIX_ASSET_TYPE],
        "flags": 131,
    }


def find_asset_url(payload: bytes | str, plugin_id: str) -> str:
    """Pick the VSIX package source from a marketplace reply.

    Raises:
        MarketplaceError: If the reply is unparsable or lists no extension versions
        MissingAssetError: If no file has the VSIX asset type
    """
    try:
        response = MarketplaceResponse.model_validate_json(payload)
    except ValidationError as e:
        raise MarketplaceError(
            plugin_id,
            f"Failed to parse VS Code extension marketplace response for plugin {plugin_id}",
        ) from e

    if (
        not response.results
        or not response.results[0].extensions
        or not response.results[0].extensions[0].versions
    ):
        raise MissingAssetError(plugin_id)

    for f in response.results[0].extensions[0].versions[0].files:
        if f.asset_type == VSIX_ASSET_TYPE:
            return f.source
    raise MissingAssetError(plugin_id)


def is_relative_url(url: str) -> bool:
    return not urlparse(url).scheme


def resolve_relative_url(url: str, default_registry: str, plugin_id: str = "") -> str:
    """Resolve an extension path against the default registry.

    Absolute URLs and marketplace identifiers are returned unchanged.

    Raises:
        InvalidExtensionError: If ``url`` cannot be parsed
        UnresolvableExtensionError: If ``url`` is relative and there is no default registry
    """
    if is_marketplace_id(url):
        return url
    try:
        if not is_relative_url(url):
            return url
        if not default_registry:
            raise UnresolvableExtensionError(plugin_id, url)
        return urljoin(default_registry.rstrip("/") + "/", url.lstrip("/"))
    except ValueError as e:
        raise InvalidExtensionError(plugin_id, url, str(e)) from e


def resolve_relative_extensions(metas: list[PluginMeta], default_registry: str) -> list[PluginMeta]:
    """Return metas whose relative extension paths point into the default registry."""
    resolved = []
    for meta in metas:
        extensions = [
            resolve_relative_url(ext, default_registry, meta.id) for ext in meta.spec.extensions
        ]
        if extensions == meta.spec.extensions:
            resolved.append(meta)
            continue
        spec = meta.spec.model_copy(update={"extensions": extensions})
        resolved.append(meta.model_copy(update={"spec": spec}))
    return resolved


class MarketplaceClient:
    """Queries the marketplace extension gallery."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        rate_limit: RateLimitPolicy | None = None,
        on_rate_limit: Callable[[int, int], Awaitable[None]] | None = None,
    ) -> None:
        self._client = client
        self.url = url
        self.rate_limit = rate_limit or RateLimitPolicy()
        self.on_rate_limit = on_rate_limit

    async def query(self, extension: str, plugin_id: str) -> bytes:
        """POST the extension query for a ``vscode:extension/`` identifier.

        Raises:
            MarketplaceError: If the identifier is malformed or the query fails
            RateLimitedError: If rate limiting outlasts every retry
        """
        if not is_marketplace_id(extension) or not extension[len(MARKETPLACE_SCHEME) :]:
            raise MarketplaceError(
                plugin_id,
                f"Parsing of VS Code extension ID '{extension}' failed for plugin '{plugin_id}'. "
                f"Extension should start from '{MARKETPLACE_SCHEME}'",
            )
        name = extension[len(MARKETPLACE_SCHEME) :]

        async def post() -> httpx.Response:
            response = await self._client.post(
                self.url, json=marketplace_query(name), headers=MARKETPLACE_HEADERS
            )
            if response.status_code == 429:
                response.raise_for_status()
            return response

        try:
            response = await self.rate_limit.run(post, plugin_id, on_retry=self.on_rate_limit)
        except (httpx.RequestError, httpx.InvalidURL) as e:
            raise MarketplaceError(
                plugin_id, f"VS Code extension downloading failed {plugin_id}. Error: {e}"
            ) from e

        if response.status_code != 200:
            raise MarketplaceError(
                plugin_id,
                f"VS Code extension downloading failed {plugin_id}. "
                f"Status: {response.status_code}. Body: {response.text}",
            )
        return response.content

    async def archive_url(self, extension: str, plugin_id: str) -> str:
        payload = await self.query(extension, plugin_id)
        return find_asset_url(payload, plugin_id)


class ArtifactResolver:
    """Computes download URLs for the extensions of a meta."""

    def __init__(self, marketplace: MarketplaceClient, default_registry: str = "") -> None:
        self.marketplace = marketplace
        self.default_registry = default_registry

    async def resolve(self, meta: PluginMeta) -> list[str]:
        """Download URLs in the order of ``spec.extensions``."""
        urls = []
        for extension in meta.spec.extensions:
            if is_marketplace_id(extension):
                url = await self.marketplace.archive_url(extension, meta.id)
                logger.debug("Resolved %s to %s for plugin '%s'", extension, url, meta.id)
            else:
                url = resolve_relative_url(extension, self.default_registry, meta.id)
            urls.append(url)
        return urls
