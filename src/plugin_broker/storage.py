"""Thread-safe store of finalised plugin descriptors."""

from __future__ import annotations

import json
import threading

from plugin_broker.model import PluginDescriptor


class DescriptorStore:
    """Append-only collection of descriptors.

    Descriptors are never deduplicated or reordered; :meth:`list` returns a
    snapshot that later additions do not affect.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._descriptors: list[PluginDescriptor] = []

    def add(self, descriptor: PluginDescriptor) -> None:
        with self._lock:
            self._descriptors.append(descriptor)

    def list(self) -> list[PluginDescriptor]:
        with self._lock:
            return list(self._descriptors)

    def __len__(self) -> int:
        with self._lock:
            return len(self._descriptors)

    def to_json(self) -> str:
        """Serialise the stored descriptors as the tooling JSON array."""
        return json.dumps(
            [d.model_dump(mode="json", by_alias=True) for d in self.list()],
            separators=(",", ":"),
        )
