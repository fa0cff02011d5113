"""Detection of extension artifacts shipped by more than one plugin."""

from __future__ import annotations

from collections import defaultdict
from urllib.parse import urlparse

from plugin_broker.errors import InvalidExtensionError
from plugin_broker.marketplace import MARKETPLACE_SCHEME, is_marketplace_id
from plugin_broker.model import PluginMeta


def artifact_fingerprint(extension: str) -> str:
    """Normalised identity of an extension entry.

    Marketplace identifiers map to ``publisher.name``; URLs map to their last
    path segment. Both are lowercased.
    """
    if is_marketplace_id(extension):
        return extension[len(MARKETPLACE_SCHEME) :].strip().lower()
    path = urlparse(extension).path.rstrip("/")
    return path.rsplit("/", 1)[-1].lower()


def detect_collisions(metas: list[PluginMeta]) -> dict[str, list[str]]:
    """Map each shared fingerprint to the ids of the plugins that ship it.

    An artifact listed twice by the same plugin is not a collision.

    Raises:
        InvalidExtensionError: If an extension URL cannot be parsed
    """
    owners: dict[str, list[str]] = defaultdict(list)
    for meta in metas:
        for extension in meta.spec.extensions:
            try:
                fingerprint = artifact_fingerprint(extension)
            except ValueError as e:
                raise InvalidExtensionError(meta.id, extension, str(e)) from e
            if fingerprint and meta.id not in owners[fingerprint]:
                owners[fingerprint].append(meta.id)
    return {fp: ids for fp, ids in owners.items() if len(ids) > 1}


def colliding_pairs(collisions: dict[str, list[str]]) -> list[tuple[str, str, str]]:
    """Expand collisions into ``(fingerprint, first plugin, other plugin)`` triples."""
    pairs = []
    for fingerprint, ids in collisions.items():
        for i, first in enumerate(ids):
            for other in ids[i + 1 :]:
                pairs.append((fingerprint, first, other))
    return pairs


def format_collisions(collisions: dict[str, list[str]]) -> str:
    return "; ".join(
        f"'{fingerprint}' in plugins '{first}' and '{other}'"
        for fingerprint, first, other in colliding_pairs(collisions)
    )
