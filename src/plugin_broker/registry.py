"""Plugin metadata fetching from plugin registries."""

from __future__ import annotations

import logging

import httpx
import yaml
from pydantic import ValidationError

from plugin_broker.errors import FetchFailedError, MalformedMetaError, MissingRegistryError
from plugin_broker.files import Downloader
from plugin_broker.model import PluginMeta, PluginReference

logger = logging.getLogger(__name__)

REGISTRY_URL_FORMAT = "{registry}/{plugin_id}/meta.yaml"


class MetaLoader(yaml.SafeLoader):
    """Safe loader that keeps numeric plain scalars as their source text.

    An unquoted ``version: 1.10`` stays ``"1.10"`` instead of becoming ``1.1``.
    Integer fields are coerced back by the models.
    """


MetaLoader.add_constructor("tag:yaml.org,2002:int", MetaLoader.construct_yaml_str)
MetaLoader.add_constructor("tag:yaml.org,2002:float", MetaLoader.construct_yaml_str)


def load_meta_yaml(stream):
    return yaml.load(stream, Loader=MetaLoader)


def registry_url(reference: PluginReference, default_registry: str) -> str:
    """Registry base URL for a reference.

    A registry on the reference is used as is; the default registry gets the
    ``/plugins`` path appended.

    Raises:
        MissingRegistryError: If neither is available
    """
    if reference.registry:
        return reference.registry.rstrip("/")
    if not default_registry:
        raise MissingRegistryError(reference.id)
    return default_registry.rstrip("/") + "/plugins"


def meta_url(reference: PluginReference, default_registry: str) -> str:
    if reference.reference:
        return reference.reference
    registry = registry_url(reference, default_registry)
    return REGISTRY_URL_FORMAT.format(registry=registry, plugin_id=reference.id)


def parse_meta(raw: bytes | str, plugin_id: str) -> PluginMeta:
    """Parse a meta.yaml document.

    Raises:
        MalformedMetaError: On YAML syntax errors or a document of the wrong shape
    """
    try:
        data = load_meta_yaml(raw)
    except yaml.YAMLError as e:
        raise MalformedMetaError(plugin_id, str(e)) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedMetaError(plugin_id, "document is not a mapping")

    try:
        return PluginMeta.model_validate(data)
    except ValidationError as e:
        raise MalformedMetaError(plugin_id, str(e)) from e


class MetadataFetcher:
    """Resolves plugin references into meta documents."""

    def __init__(self, downloader: Downloader) -> None:
        self._downloader = downloader

    async def get_meta(self, reference: PluginReference, default_registry: str) -> PluginMeta:
        url = meta_url(reference, default_registry)
        logger.info("Fetching plugin meta.yaml from %s", url)
        try:
            raw = await self._downloader.fetch(url)
        except httpx.HTTPStatusError as e:
            raise FetchFailedError(
                reference.id, url, status=e.response.status_code, body=e.response.text
            ) from e
        except (httpx.RequestError, httpx.InvalidURL) as e:
            raise FetchFailedError(reference.id, url, reason=str(e)) from e

        meta = parse_meta(raw, reference.id)
        # The id is used all over the pipeline
        if not meta.id:
            meta = meta.model_copy(update={"id": reference.id})
        return meta

    async def get_metas(
        self, references: list[PluginReference], default_registry: str
    ) -> list[PluginMeta]:
        """Fetch metas for every reference in order; the first failure aborts."""
        metas = []
        for reference in references:
            metas.append(await self.get_meta(reference, default_registry))
        return metas
