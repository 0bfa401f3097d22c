"""
Instance enumeration and snapshot reconciliation.

Each enumeration replaces the snapshot wholesale. Instances that disappeared
are removed from the pool immediately; new instances are filtered by shard,
assigned a location and queued for address resolution in bounded batches.
"""

import builtins
import logging
from collections import deque
from dataclasses import dataclass, field

from .directory import DirectoryResolver
from .errors import UnresolvableLocationError
from .models import MAX_BATCH_SIZE, Instance, PendingBatch, RetryCounter, chunk_batches
from .pool import AddressPool, removal_tag

logger = logging.getLogger(__name__)


@dataclass
class EnumerationResult:
    """Outcome of one enumeration."""

    added: builtins.list[str] = field(default_factory=list)
    removed: builtins.list[str] = field(default_factory=list)
    batches: builtins.list[PendingBatch] = field(default_factory=list)
    dropped: builtins.list[str] = field(default_factory=list)


def diff_snapshots(
    old: builtins.dict[str, Instance], new: builtins.dict[str, Instance]
) -> tuple[builtins.list[str], builtins.list[str]]:
    """Return (added, removed) instance ids, compared by id only."""
    added = [instance_id for instance_id in new if instance_id not in old]
    removed = [instance_id for instance_id in old if instance_id not in new]
    return added, removed


class InstanceEnumerator:
    """Tracks the instance snapshot of one directory service."""

    def __init__(
        self,
        resolver: DirectoryResolver,
        pool: AddressPool,
        queue: deque[PendingBatch],
        retries: RetryCounter,
        shard: str | None = None,
        tag_prefix: str = "",
        batch_size: int = MAX_BATCH_SIZE,
        metrics=None,
        log_extra=None,
    ):
        self.log = logging.LoggerAdapter(logger, log_extra or {})
        self.resolver = resolver
        self.pool = pool
        self.queue = queue
        self.retries = retries
        self.shard = shard
        self.tag_prefix = tag_prefix
        self.batch_size = batch_size
        self.metrics = metrics
        self.snapshot: builtins.dict[str, Instance] = {}

    async def enumerate(self, service_id: str) -> EnumerationResult:
        """List instances, publish removals and queue additions."""
        instances = await self.resolver.list_instances(service_id)

        new_snapshot = {instance.id: instance for instance in instances}
        added, removed = diff_snapshots(self.snapshot, new_snapshot)
        self.snapshot = new_snapshot

        if added or removed:
            self.log.debug("detected %d added, %d removed", len(added), len(removed))
        if self.metrics is not None:
            self.metrics.set_instances(len(new_snapshot))

        for instance_id in removed:
            self.pool.publish(removal_tag(instance_id, self.tag_prefix), [])
            self.retries.reclaim(instance_id)
            if self.metrics is not None:
                self.metrics.record_publish("remove")

        result = EnumerationResult(added=added, removed=removed)

        by_location: builtins.dict[str, builtins.list[str]] = {}
        for instance_id in added:
            instance = new_snapshot[instance_id]
            if instance.shard and self.shard and instance.shard != self.shard:
                self.log.debug("dropping instance %s: shard does not match", instance_id)
                result.dropped.append(instance_id)
                continue

            location = instance.location or self.resolver.fallback_location
            if not location:
                error = UnresolvableLocationError(instance_id)
                self.log.warning("dropping instance %s: %s", instance_id, error)
                result.dropped.append(instance_id)
                continue

            by_location.setdefault(location, []).append(instance_id)

        for location, instance_ids in by_location.items():
            result.batches.extend(chunk_batches(location, instance_ids, self.batch_size))

        self.queue.extend(result.batches)
        return result
