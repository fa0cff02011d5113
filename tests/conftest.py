"""Pytest configuration and shared fixtures."""

from collections.abc import Callable

import httpx
import pytest

from plugin_broker.events import BrokerEvent, CallbackSubscriber, EventBus
from plugin_broker.model import PluginMeta, RuntimeID


class FakeRandom:
    """Deterministic randomness: queued values first, then fixed fallbacks."""

    def __init__(self, strings: list[str] | None = None, ints: list[int] | None = None) -> None:
        self.strings = list(strings or [])
        self.ints = list(ints or [])

    def string(self, length: int) -> str:
        value = self.strings.pop(0) if self.strings else "x" * length
        return value[:length].ljust(length, "x")

    def int_from_range(self, start: int, stop: int) -> int:
        value = self.ints.pop(0) if self.ints else start
        assert start <= value < stop
        return value


class RecordingSleep:
    """Stand-in for asyncio.sleep that only records the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class EventRecorder:
    """Bus subscriber keeping every accepted event."""

    def __init__(self, bus: EventBus) -> None:
        self.events: list[BrokerEvent] = []
        self.closed = False
        bus.subscribe(CallbackSubscriber(self.events.append, on_close=self._close))

    def _close(self) -> None:
        self.closed = True

    @property
    def log_texts(self) -> list[str]:
        return [e.text for e in self.events if hasattr(e, "text")]


@pytest.fixture
def fake_rand() -> FakeRandom:
    return FakeRandom(strings=["abcdefghij", "klmnopqrst", "uvwxyzabcd"], ints=[4242, 5353, 6464])


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def runtime_id() -> RuntimeID:
    return RuntimeID(workspace="workspace123", environment="default", owner_id="user42")


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(bus: EventBus) -> EventRecorder:
    return EventRecorder(bus)


@pytest.fixture
def status_error() -> Callable[[int], httpx.HTTPStatusError]:
    """Factory for httpx status errors as raised by ``raise_for_status``."""

    def make(status: int, url: str = "https://example.com/file") -> httpx.HTTPStatusError:
        request = httpx.Request("GET", url)
        response = httpx.Response(status, request=request, text=f"status {status}")
        return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)

    return make


@pytest.fixture
def sidecar_meta() -> PluginMeta:
    """VS Code extension with one sidecar container."""
    return PluginMeta.model_validate(
        {
            "apiVersion": "v2",
            "id": "redhat/java/0.46.0",
            "type": "VS Code extension",
            "publisher": "redhat",
            "name": "java",
            "version": "0.46.0",
            "description": "Java language support",
            "spec": {
                "extensions": ["https://download.example.com/vscode-java-0.46.0.vsix"],
                "containers": [{"name": "vscode-java", "image": "quay.io/eclipse/che-sidecar-java"}],
            },
        }
    )


@pytest.fixture
def server_meta() -> PluginMeta:
    """Plugin with its own container and no extensions."""
    return PluginMeta.model_validate(
        {
            "apiVersion": "v2",
            "id": "eclipse/che-machine-exec-plugin/7.0.0",
            "type": "Che Plugin",
            "publisher": "eclipse",
            "name": "che-machine-exec-plugin",
            "version": "7.0.0",
            "description": "Che Plug-in with che-machine-exec service",
            "spec": {
                "containers": [
                    {
                        "name": "che-machine-exec",
                        "image": "eclipse/che-machine-exec:7.0.0",
                        "ports": [{"exposedPort": 4444}],
                    }
                ],
                "endpoints": [
                    {
                        "name": "che-machine-exec",
                        "public": True,
                        "targetPort": 4444,
                        "attributes": {"protocol": "ws", "type": "terminal"},
                    }
                ],
            },
        }
    )


@pytest.fixture
def editor_meta() -> PluginMeta:
    """Default editor carrying the remote runtime injector."""
    return PluginMeta.model_validate(
        {
            "apiVersion": "v2",
            "id": "eclipse/che-theia/next",
            "type": "Che Editor",
            "publisher": "eclipse",
            "name": "che-theia",
            "version": "next",
            "spec": {
                "containers": [{"name": "theia-ide", "image": "eclipse/che-theia:next"}],
                "initContainers": [
                    {
                        "name": "remote-runtime-injector",
                        "image": "eclipse/che-theia-endpoint-runtime-binary:next",
                        "env": [
                            {"name": "PLUGIN_REMOTE_ENDPOINT_EXECUTABLE", "value": "/bin/x"},
                            {"name": "REMOTE_ENDPOINT_VOLUME_NAME", "value": "remote-endpoint"},
                        ],
                        "volumes": [
                            {"name": "remote-endpoint", "mountPath": "/remote-endpoint"}
                        ],
                    }
                ],
            },
        }
    )
