"""Tests for extension artifact resolution and the marketplace client."""

import json

import httpx
import pytest
import respx
from httpx import Response

from plugin_broker.config.schema import DEFAULT_MARKETPLACE_URL
from plugin_broker.errors import (
    InvalidExtensionError,
    MarketplaceError,
    MissingAssetError,
    RateLimitedError,
    UnresolvableExtensionError,
)
from plugin_broker.marketplace import (
    VSIX_ASSET_TYPE,
    ArtifactResolver,
    MarketplaceClient,
    find_asset_url,
    resolve_relative_extensions,
    resolve_relative_url,
)
from plugin_broker.model import PluginMeta
from plugin_broker.retry import RateLimitPolicy

VSIX_URL = "https://ms-kubernetes-tools.gallery.vsassets.io/vscode-kubernetes-tools.vsix"


def marketplace_reply(files: list[dict]) -> dict:
    return {"results": [{"extensions": [{"versions": [{"version": "1.0.0", "files": files}]}]}]}


def make_client(client: httpx.AsyncClient, sleep) -> MarketplaceClient:
    return MarketplaceClient(client, DEFAULT_MARKETPLACE_URL, RateLimitPolicy(sleep=sleep))


class TestFindAssetUrl:
    def test_picks_vsix_file(self):
        payload = json.dumps(
            marketplace_reply(
                [
                    {"assetType": "Microsoft.VisualStudio.Services.Icons.Default", "source": "icon"},
                    {"assetType": VSIX_ASSET_TYPE, "source": VSIX_URL},
                ]
            )
        )
        assert find_asset_url(payload, "a/b/1") == VSIX_URL

    def test_no_vsix_file(self):
        payload = json.dumps(marketplace_reply([{"assetType": "other", "source": "x"}]))
        with pytest.raises(MissingAssetError):
            find_asset_url(payload, "a/b/1")

    def test_no_results(self):
        with pytest.raises(MissingAssetError):
            find_asset_url('{"results": []}', "a/b/1")

    def test_unparsable_payload(self):
        with pytest.raises(MarketplaceError, match="Failed to parse"):
            find_asset_url("<html>oops</html>", "a/b/1")


class TestRelativeUrls:
    def test_absolute_url_unchanged(self):
        url = "https://download.example.com/ext.vsix"
        assert resolve_relative_url(url, "") == url

    def test_marketplace_id_unchanged(self):
        assert resolve_relative_url("vscode:extension/a.b", "") == "vscode:extension/a.b"

    def test_relative_resolved_against_registry(self):
        resolved = resolve_relative_url("resources/ext.vsix", "https://registry.example.com/v3")
        assert resolved == "https://registry.example.com/v3/resources/ext.vsix"

    def test_relative_without_registry(self):
        with pytest.raises(UnresolvableExtensionError) as exc_info:
            resolve_relative_url("relative/path.vsix", "", "a/b/1")
        assert str(exc_info.value) == (
            "cannot resolve relative extension path without default registry"
        )

    def test_unparsable_url(self):
        with pytest.raises(InvalidExtensionError, match="Invalid IPv6 URL"):
            resolve_relative_url("https://[broken/ext.vsix", "https://reg", "a/b/1")

    def test_resolve_relative_extensions_leaves_meta_untouched(self):
        meta = PluginMeta(
            id="a/b/1",
            spec={"extensions": ["https://x/abs.vsix", "rel/ext.vsix"]},
        )

        resolved = resolve_relative_extensions([meta], "https://registry.example.com")

        assert resolved[0].spec.extensions == [
            "https://x/abs.vsix",
            "https://registry.example.com/rel/ext.vsix",
        ]
        assert meta.spec.extensions == ["https://x/abs.vsix", "rel/ext.vsix"]


@pytest.mark.asyncio
@respx.mock
async def test_marketplace_query(recording_sleep):
    """Test the extension query body and headers."""
    route = respx.post(DEFAULT_MARKETPLACE_URL).mock(
        return_value=Response(200, json=marketplace_reply([{"assetType": VSIX_ASSET_TYPE, "source": VSIX_URL}]))
    )

    async with httpx.AsyncClient() as client:
        url = await make_client(client, recording_sleep).archive_url(
            "vscode:extension/ms-kubernetes-tools.vscode-kubernetes-tools", "a/b/1"
        )

    assert url == VSIX_URL
    request = route.calls.last.request
    assert request.headers["Accept"] == "application/json;api-version=3.0-preview.1"
    assert request.headers["Content-Type"] == "application/json"
    body = json.loads(request.content)
    assert body == {
        "filters": [
            {
                "criteria": [
                    {"filterType": 7, "value": "ms-kubernetes-tools.vscode-kubernetes-tools"}
                ],
                "pageNumber": 1,
                "pageSize": 1,
                "sortBy": 0,
                "sortOrder": 0,
            }
        ],
        "assetTypes": [VSIX_ASSET_TYPE],
        "flags": 131,
    }


@pytest.mark.asyncio
@respx.mock
async def test_marketplace_rate_limited(recording_sleep):
    route = respx.post(DEFAULT_MARKETPLACE_URL).mock(return_value=Response(429))

    async with httpx.AsyncClient() as client:
        with pytest.raises(RateLimitedError):
            await make_client(client, recording_sleep).query("vscode:extension/a.b", "a/b/1")

    assert route.call_count == 6
    assert recording_sleep.delays == [60.0] * 5


@pytest.mark.asyncio
@respx.mock
async def test_marketplace_recovers_after_rate_limit(recording_sleep):
    reply = marketplace_reply([{"assetType": VSIX_ASSET_TYPE, "source": VSIX_URL}])
    respx.post(DEFAULT_MARKETPLACE_URL).mock(
        side_effect=[Response(429), Response(200, json=reply)]
    )

    async with httpx.AsyncClient() as client:
        url = await make_client(client, recording_sleep).archive_url("vscode:extension/a.b", "a/b/1")

    assert url == VSIX_URL
    assert recording_sleep.delays == [60.0]


@pytest.mark.asyncio
@respx.mock
async def test_marketplace_server_error(recording_sleep):
    respx.post(DEFAULT_MARKETPLACE_URL).mock(return_value=Response(500, text="oops"))

    async with httpx.AsyncClient() as client:
        with pytest.raises(MarketplaceError, match="Status: 500"):
            await make_client(client, recording_sleep).query("vscode:extension/a.b", "a/b/1")

    assert recording_sleep.delays == []


@pytest.mark.asyncio
async def test_marketplace_malformed_id(recording_sleep):
    async with httpx.AsyncClient() as client:
        with pytest.raises(MarketplaceError, match="Parsing of VS Code extension ID"):
            await make_client(client, recording_sleep).query("vscode:extension/", "a/b/1")


@pytest.mark.asyncio
@respx.mock
async def test_resolver_keeps_extension_order(recording_sleep):
    respx.post(DEFAULT_MARKETPLACE_URL).mock(
        return_value=Response(200, json=marketplace_reply([{"assetType": VSIX_ASSET_TYPE, "source": VSIX_URL}]))
    )
    meta = PluginMeta(
        id="a/b/1",
        spec={
            "extensions": [
                "https://download.example.com/first.vsix",
                "vscode:extension/ms-kubernetes-tools.vscode-kubernetes-tools",
                "resources/last.theia",
            ]
        },
    )

    async with httpx.AsyncClient() as client:
        resolver = ArtifactResolver(make_client(client, recording_sleep), "https://registry.example.com")
        urls = await resolver.resolve(meta)

    assert urls == [
        "https://download.example.com/first.vsix",
        VSIX_URL,
        "https://registry.example.com/resources/last.theia",
    ]
