"""Pydantic model for broker configuration."""

from __future__ import annotations

import logging
import ssl
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from plugin_broker.model import PluginReference, RuntimeID

logger = logging.getLogger(__name__)

DEFAULT_MARKETPLACE_URL = "https://marketplace.visualstudio.com/_apis/public/gallery/extensionquery"


class BrokerConfig(BaseModel):
    """Immutable settings for one broker run."""

    model_config = ConfigDict(frozen=True)

    push_endpoint: str = Field(default="", description="WebSocket endpoint where to push statuses")
    disable_push: bool = Field(
        default=False, description="Do not open the control channel; events are only logged"
    )
    auth_enabled: bool = Field(
        default=False, description="Authenticate against the controller with a machine token"
    )
    token: str | None = Field(default=None, description="Machine token for the control channel")
    runtime_id: RuntimeID = Field(
        default_factory=RuntimeID,
        description="Runtime identity in format 'workspace:environment:ownerId'",
    )
    plugins: list[PluginReference] = Field(
        default_factory=list, description="Plugins to resolve from registries"
    )
    metas_file: Path | None = Field(
        default=None, description="Preformed list of plugin metas; skips registry fetching"
    )
    registry_address: str = Field(default="", description="Default plugin registry URL")
    self_signed_cert: Path | None = Field(
        default=None, description="PEM certificate merged into the default trust store"
    )
    plugins_dir: Path = Field(default=Path("/plugins"), description="Shared plugins volume")
    download_artifacts: bool = Field(
        default=True, description="Download extension artifacts; false means metadata only"
    )
    localhost_sidecar: bool = Field(
        default=False, description="Reach sidecars via localhost instead of dedicated endpoints"
    )
    strict_collisions: bool = Field(
        default=False, description="Fail the run when two plugins ship the same extension"
    )
    unpack_extensions: bool = Field(
        default=False, description="Unpack .vsix/.theia packages into sidecar directories"
    )
    marketplace_url: str = Field(default=DEFAULT_MARKETPLACE_URL)
    rate_limit_retries: int = Field(default=5, ge=0, description="Retries after HTTP 429")
    rate_limit_delay: float = Field(
        default=60.0, ge=0, description="Seconds to wait between rate-limit retries"
    )
    http_timeout: float = Field(default=60.0, gt=0, description="HTTP timeout in seconds")

    @field_validator("runtime_id", mode="before")
    @classmethod
    def _parse_runtime_id(cls, value: Any) -> Any:
        if isinstance(value, str):
            return RuntimeID.parse(value)
        return value

    @field_validator("plugins", mode="before")
    @classmethod
    def _parse_plugins(cls, value: Any) -> Any:
        if value is None:
            return []
        return [PluginReference.parse(v) if isinstance(v, str) else v for v in value]

    @model_validator(mode="after")
    def _check_push_endpoint(self) -> BrokerConfig:
        if self.disable_push:
            return self
        if not self.push_endpoint:
            raise ValueError("Push endpoint required (set it with --push-endpoint)")
        if not self.push_endpoint.startswith("ws"):
            raise ValueError("Push endpoint protocol must be either ws or wss")
        return self

    def ssl_context(self) -> ssl.SSLContext:
        """Default trust store plus the optional self-signed certificate."""
        context = ssl.create_default_context()
        if self.self_signed_cert is not None:
            context.load_verify_locations(cafile=str(self.self_signed_cert))
        return context

    def print_summary(self) -> None:
        logger.info("Broker configuration")
        logger.info("  Push endpoint: %s", self.push_endpoint or "<disabled>")
        logger.info("  Auth enabled: %s", self.auth_enabled)
        logger.info("  Runtime ID:")
        logger.info("    Workspace: %s", self.runtime_id.workspace)
        logger.info("    Environment: %s", self.runtime_id.environment)
        logger.info("    OwnerId: %s", self.runtime_id.owner_id)
        logger.info("  Registry: %s", self.registry_address or "<none>")
        if self.self_signed_cert is not None:
            logger.info("  Self-signed certificate: %s", self.self_signed_cert)
