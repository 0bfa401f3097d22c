"""
Downstream address pool interface.

Trackers publish membership deltas as ``tag -> address set``. Publishing an
empty set removes the tag; a non-empty set (re)establishes it. Publishing the
same set twice is equivalent to publishing it once.
"""

import builtins
import logging
from collections.abc import Callable, Iterable
from typing import Protocol

logger = logging.getLogger(__name__)


class AddressPool(Protocol):
    """Consumer of tracker membership updates."""

    def publish(self, tag: str, addresses: Iterable[str]) -> None:
        """Replace the address set under ``tag``; empty removes it."""


def member_tag(application: str, service: str, instance_id: str, prefix: str = "") -> str:
    """Tag under which a live instance's addresses are published."""
    return f"{prefix}{application}:{service}:{instance_id}"


def removal_tag(instance_id: str, prefix: str = "") -> str:
    """Stable per-instance tag used when an instance leaves the snapshot."""
    return f"{prefix}{instance_id}"


class InMemoryAddressPool:
    """Address pool that keeps tags in a dict, for the CLI and tests."""

    def __init__(self, on_change: Callable[[str, frozenset[str]], None] | None = None):
        self._tags: builtins.dict[str, frozenset[str]] = {}
        self._on_change = on_change
        self.publish_count = 0

    def publish(self, tag: str, addresses: Iterable[str]) -> None:
        self.publish_count += 1
        new = frozenset(addresses)
        old = self._tags.get(tag, frozenset())
        if new == old:
            return

        if new:
            self._tags[tag] = new
        else:
            self._tags.pop(tag, None)

        logger.debug("Pool tag %s now has %d address(es)", tag, len(new))
        if self._on_change is not None:
            self._on_change(tag, new)

    def get(self, tag: str) -> frozenset[str]:
        return self._tags.get(tag, frozenset())

    def tags(self) -> builtins.list[str]:
        return sorted(self._tags)

    def snapshot(self) -> builtins.dict[str, builtins.list[str]]:
        return {tag: sorted(addresses) for tag, addresses in sorted(self._tags.items())}

    def __contains__(self, tag: str) -> bool:
        return tag in self._tags

    def __len__(self) -> int:
        return len(self._tags)
