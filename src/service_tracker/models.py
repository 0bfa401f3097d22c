"""
Data model for the service tracker.

Directory records (applications, services, instances) are parsed into small
dataclasses; the scheduler's mutable context lives in ``PollState`` and the
address-resolution work queue is a deque of ``PendingBatch`` entries.
"""

import builtins
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import TransportError

# Maximum number of instance ids resolved in one inventory lookup
MAX_BATCH_SIZE = 50

# Consecutive incomplete-data observations tolerated per instance
MAX_INSTANCE_RETRIES = 5

# Directory metadata keys
APPLICATION_LOCATION_KEY = "datacenter_name"
INSTANCE_LOCATION_KEY = "DATACENTER"
INSTANCE_SHARD_KEY = "SHARD"


class PollerState(Enum):
    """Poll scheduler states."""

    RESOLVE_APP = "resolve_app"
    RESOLVE_SERVICE = "resolve_service"
    ENUMERATE = "enumerate"
    DRAIN_QUEUE = "drain_queue"
    RESOLVE_BATCH = "resolve_batch"
    IDLE = "idle"
    FAULT = "fault"


def require_records(objs: Any, what: str) -> builtins.list[builtins.dict[str, Any]]:
    if not isinstance(objs, list) or not all(isinstance(obj, dict) for obj in objs):
        raise TransportError(f"malformed {what} response: expected a list of objects")
    return objs


def _metadata_str(value: Any) -> str | None:
    # Metadata values may arrive as numbers (SHARD: 1)
    if value is None or value == "":
        return None
    return str(value)


@dataclass
class Application:
    """A directory application."""

    name: str
    id: str
    fallback_location: str | None = None

    @classmethod
    def from_record(
        cls, name: str, record: builtins.dict[str, Any], read_location: bool = False
    ) -> "Application":
        fallback = None
        if read_location:
            fallback = (record.get("metadata") or {}).get(APPLICATION_LOCATION_KEY)
        return cls(name=name, id=record["uuid"], fallback_location=fallback)


@dataclass
class Service:
    """A directory service scoped to an application."""

    name: str
    id: str
    application_id: str

    @classmethod
    def from_record(
        cls, name: str, application_id: str, record: builtins.dict[str, Any]
    ) -> "Service":
        return cls(name=name, id=record["uuid"], application_id=application_id)


@dataclass
class Instance:
    """A registered instance of a directory service."""

    id: str
    location: str | None = None
    shard: str | None = None
    metadata: builtins.dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: builtins.dict[str, Any]) -> "Instance":
        metadata = record.get("metadata") or {}
        return cls(
            id=record["uuid"],
            location=metadata.get(INSTANCE_LOCATION_KEY),
            shard=_metadata_str(metadata.get(INSTANCE_SHARD_KEY)),
            metadata=metadata,
        )


@dataclass
class PendingBatch:
    """A group of instance ids in one location awaiting address resolution."""

    location: str
    instance_ids: builtins.list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.instance_ids)


def chunk_batches(
    location: str, instance_ids: builtins.list[str], size: int = MAX_BATCH_SIZE
) -> builtins.list[PendingBatch]:
    """Split ids into batches of at most ``size``, preserving order."""
    return [
        PendingBatch(location=location, instance_ids=instance_ids[i : i + size])
        for i in range(0, len(instance_ids), size)
    ]


class RetryCounter:
    """Counts consecutive incomplete-data observations per instance."""

    def __init__(self, limit: int = MAX_INSTANCE_RETRIES):
        self.limit = limit
        self._counts: builtins.dict[str, int] = {}

    def record(self, instance_id: str) -> int:
        """Increment and return the count for an instance."""
        count = self._counts.get(instance_id, 0) + 1
        self._counts[instance_id] = count
        return count

    def exhausted(self, count: int) -> bool:
        return count >= self.limit

    def get(self, instance_id: str) -> int:
        return self._counts.get(instance_id, 0)

    def reclaim(self, instance_id: str) -> None:
        self._counts.pop(instance_id, None)

    def __len__(self) -> int:
        return len(self._counts)


@dataclass
class PollState:
    """Mutable context shared by the scheduler's state handlers."""

    error_delay: float
    last_error: BaseException | None = None
    last_poll: float = 0.0
    current_batch: PendingBatch | None = None
    queue: deque[PendingBatch] = field(default_factory=deque)

    def next_backoff(self, max_interval: float) -> float:
        """Return the current fault delay and double it for the next fault."""
        delay = self.error_delay
        self.error_delay = min(delay * 2, max_interval)
        return delay

    def reset_backoff(self, min_interval: float) -> None:
        self.error_delay = min_interval
