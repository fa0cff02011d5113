"""Plugin broker pipeline driver.

A run fetches and validates plugin metas, places extension artifacts on the
shared plugins volume, wires extension sidecars and finally publishes the
resulting descriptors as the *Done* event. Any fatal error ends the run
with a *Failed* event instead. Either way the bus is cleared afterwards.
"""

from __future__ import annotations

import logging
from pathlib import Path

from plugin_broker.collisions import detect_collisions, format_collisions
from plugin_broker.errors import ArtifactCollisionError, BrokerError, InjectionLookupError
from plugin_broker.events import DoneEvent, EventBus, FailedEvent, LogEvent, StartedEvent
from plugin_broker.files import clear_dir
from plugin_broker.injector import get_runtime_injection, inject
from plugin_broker.marketplace import ArtifactResolver, resolve_relative_extensions
from plugin_broker.materializer import Materializer
from plugin_broker.model import (
    PluginDescriptor,
    PluginMeta,
    PluginReference,
    RuntimeID,
    RuntimeInjection,
    descriptor_from_meta,
)
from plugin_broker.randomness import Random, SystemRandom
from plugin_broker.registry import MetadataFetcher
from plugin_broker.sidecar import add_plugin_runner_requirements
from plugin_broker.storage import DescriptorStore
from plugin_broker.validation import classify_metas, validate_metas

logger = logging.getLogger(__name__)


class PluginBroker:
    """Runs the provisioning pipeline for one workspace runtime.

    Args:
        bus: Bus the run's events are published on
        runtime_id: Identity attached to every event
        fetcher: Source of plugin metas
        resolver: Computes artifact URLs; required when downloading artifacts
        materializer: Places artifacts; required when downloading artifacts
        rand: Source of endpoint names and ports
        plugins_dir: Shared plugins volume, swept before downloading
        download_artifacts: False runs in metadata-only mode
        localhost_sidecar: Reach sidecars via localhost instead of endpoints
        strict_collisions: Fail instead of warn on shared extension artifacts
        store: Descriptor store; a fresh one by default
    """

    def __init__(
        self,
        bus: EventBus,
        runtime_id: RuntimeID,
        fetcher: MetadataFetcher | None = None,
        resolver: ArtifactResolver | None = None,
        materializer: Materializer | None = None,
        rand: Random | None = None,
        plugins_dir: Path = Path("/plugins"),
        download_artifacts: bool = True,
        localhost_sidecar: bool = False,
        strict_collisions: bool = False,
        store: DescriptorStore | None = None,
    ) -> None:
        if download_artifacts and (resolver is None or materializer is None):
            raise ValueError("Downloading artifacts requires a resolver and a materializer")
        self.bus = bus
        self.runtime_id = runtime_id
        self.fetcher = fetcher
        self.resolver = resolver
        self.materializer = materializer
        self.rand = rand or SystemRandom()
        self.plugins_dir = Path(plugins_dir)
        self.download_artifacts = download_artifacts
        self.localhost_sidecar = localhost_sidecar
        self.strict_collisions = strict_collisions
        self.store = store or DescriptorStore()

    async def start(self, references: list[PluginReference], default_registry: str) -> str:
        """Run the pipeline for plugin references.

        Returns:
            The tooling JSON published with the *Done* event

        Raises:
            BrokerError: The error published with the *Failed* event
        """
        if self.fetcher is None:
            raise ValueError("Starting from plugin references requires a metadata fetcher")
        await self._prepare()

        try:
            metas = await self.fetcher.get_metas(references, default_registry)
        except BrokerError as e:
            failure = BrokerError(f"Failed to download plugin meta: {e}")
            await self.fail(failure)
            raise failure from e
        except Exception as e:
            await self.fail(e)
            raise

        return await self._run(metas, default_registry)

    async def start_with_metas(self, metas: list[PluginMeta], default_registry: str) -> str:
        """Run the pipeline for a preformed meta list."""
        await self._prepare()
        return await self._run(metas, default_registry)

    async def _prepare(self) -> None:
        if self.download_artifacts:
            await self._clean_plugins_dir()
        await self.bus.publish(StartedEvent(runtime_id=self.runtime_id))

    async def _run(self, metas: list[PluginMeta], default_registry: str) -> str:
        try:
            validate_metas(metas)
            await self.print_plan(metas)
            metas = resolve_relative_extensions(metas, default_registry)
            await self._check_collisions(metas)

            server, extensions = classify_metas(metas)
            injection = await self._runtime_injection(server) if extensions else None

            for meta in metas:
                if meta.kind.is_extension:
                    await self._process_extension(meta, injection)
                else:
                    self._process_server(meta)
        except Exception as e:
            await self.fail(e)
            raise

        tooling = self.store.to_json()
        await self.bus.publish(DoneEvent(runtime_id=self.runtime_id, tooling=tooling))
        await self.close_consumers()
        return tooling

    def _process_server(self, meta: PluginMeta) -> None:
        self.print_debug(f"Adding plugin '{meta.id}' as is")
        self.store.add(descriptor_from_meta(meta))

    async def _process_extension(
        self, meta: PluginMeta, injection: RuntimeInjection | None
    ) -> None:
        if self.download_artifacts:
            await self.print_info(f"Processing plugin '{meta.id}'")
            urls = await self.resolver.resolve(meta)
            await self.materializer.materialize(meta, urls)

        descriptor = descriptor_from_meta(meta)
        if descriptor.containers:
            add_plugin_runner_requirements(descriptor, self.rand, self.localhost_sidecar)
            if injection is not None:
                inject(descriptor, injection)
        self.store.add(descriptor)

    async def _runtime_injection(self, server: list[PluginMeta]) -> RuntimeInjection | None:
        descriptors: list[PluginDescriptor] = [descriptor_from_meta(m) for m in server]
        try:
            return get_runtime_injection(descriptors)
        except InjectionLookupError as e:
            await self.print_warning(f"Remote runtime injection is not available: {e}")
            return None

    async def _check_collisions(self, metas: list[PluginMeta]) -> None:
        collisions = detect_collisions(metas)
        if not collisions:
            return
        description = format_collisions(collisions)
        if self.strict_collisions:
            raise ArtifactCollisionError(description)
        await self.print_warning(f"Extension collisions detected: {description}")

    async def _clean_plugins_dir(self) -> None:
        if not self.plugins_dir.is_dir():
            logger.debug("Plugins directory %s does not exist, nothing to clean", self.plugins_dir)
            return
        # TODO: decide whether stale plugins_dir/sidecars/<key> trees need their own sweep
        for path, error in clear_dir(self.plugins_dir):
            await self.print_warning(f"Failed to remove {path}: {error}")

    async def fail(self, error: BaseException) -> None:
        """Publish *Failed* for ``error`` and tear down subscribers."""
        logger.error("Broker run failed: %s", error)
        await self.bus.publish(FailedEvent(runtime_id=self.runtime_id, error=str(error)))
        await self.close_consumers()

    async def close_consumers(self) -> None:
        for subscriber in self.bus.clear():
            try:
                await subscriber.close()
            except Exception:
                logger.exception("Failed to close subscriber %r", subscriber)

    async def print_plan(self, metas: list[PluginMeta]) -> None:
        lines = ["List of plugins and editors to install"]
        for meta in metas:
            lines.append(f"- {meta.id}:{meta.version} - {meta.description}")
        await self.print_info("\n".join(lines) + "\n")

    async def print_info(self, message: str) -> None:
        """Log ``message`` and publish it as a *Log* event."""
        logger.info(message)
        await self.bus.publish(LogEvent(runtime_id=self.runtime_id, text=message))

    async def print_warning(self, message: str) -> None:
        logger.warning(message)
        await self.bus.publish(LogEvent(runtime_id=self.runtime_id, text=f"WARN: {message}"))

    def print_debug(self, message: str) -> None:
        logger.debug(message)

    async def on_rate_limit(self, attempt: int, total: int) -> None:
        """Report a rate-limit wait; pass as the materializer's retry hook."""
        await self.print_warning(
            f"VS Code marketplace access rate limit reached. Retry #{attempt} from {total}"
        )
