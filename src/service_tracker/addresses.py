"""
Batch address resolution against the per-location inventory service.

A batch of instance ids is resolved with a single predicate lookup. A newly
provisioned instance can show up in the directory before its network
interfaces have been assigned, so records without usable addresses are retried
a bounded number of times before being dropped.
"""

import builtins
import json
import logging
from collections import deque
from typing import Any

from .errors import IncompleteDataError, TransportError
from .models import PendingBatch, RetryCounter, require_records
from .pool import AddressPool, member_tag
from .transport import LocationClients

logger = logging.getLogger(__name__)

TERMINAL_STATES = frozenset({"destroyed", "failed"})


def build_predicate(instance_ids: builtins.list[str]) -> builtins.dict[str, Any]:
    """Build an equality-or predicate over instance ids."""
    terms = [{"eq": ["uuid", instance_id]} for instance_id in instance_ids]
    if len(terms) == 1:
        return terms[0]
    return {"or": terms}


def strip_prefix_length(address: str) -> str:
    return address.split("/", 1)[0]


def extract_addresses(record: builtins.dict[str, Any]) -> builtins.list[str]:
    """Return the bare addresses of every interface entry in a record."""
    nics = record.get("nics")
    if not isinstance(nics, list):
        return []

    addresses: builtins.list[str] = []
    for nic in nics:
        if not isinstance(nic, dict):
            continue
        ips = nic.get("ips")
        if ips is None:
            ips = [nic.get("ip")]
        elif not isinstance(ips, list):
            ips = [ips]
        for ip in ips:
            if isinstance(ip, str) and ip:
                addresses.append(strip_prefix_length(ip))
    return addresses


def is_terminal(record: builtins.dict[str, Any]) -> bool:
    return record.get("state") in TERMINAL_STATES or bool(record.get("destroyed"))


class BatchAddressResolver:
    """Resolves queued batches to addresses and publishes them to the pool."""

    def __init__(
        self,
        clients: LocationClients,
        pool: AddressPool,
        queue: deque[PendingBatch],
        retries: RetryCounter,
        application: str,
        service: str,
        tag_prefix: str = "",
        metrics=None,
        log_extra=None,
    ):
        self.log = logging.LoggerAdapter(logger, log_extra or {})
        self.clients = clients
        self.pool = pool
        self.queue = queue
        self.retries = retries
        self.application = application
        self.service = service
        self.tag_prefix = tag_prefix
        self.metrics = metrics

    async def _lookup(self, batch: PendingBatch) -> builtins.list[builtins.dict[str, Any]]:
        client = self.clients.get(batch.location)
        predicate = build_predicate(batch.instance_ids)
        objs = await client.get_json("/vms", {"predicate": json.dumps(predicate)})
        return require_records(objs, "inventory")

    async def resolve_batch(self, batch: PendingBatch) -> builtins.list[str]:
        """
        Resolve one batch and publish the addresses found.

        Returns the ids that were published. Raises ``TransportError`` after
        re-enqueueing the batch unchanged, or ``IncompleteDataError`` after
        enqueueing a retry batch for instances whose interfaces are not yet
        known.
        """
        try:
            records = await self._lookup(batch)
        except TransportError as e:
            self.queue.append(batch)
            raise TransportError(
                f"failed to fetch instance data from {batch.location} inventory: {e}",
                url=e.url,
                status=e.status,
            ) from e

        wanted = set(batch.instance_ids)
        retry_batch = PendingBatch(location=batch.location)
        published: builtins.list[str] = []

        for record in records:
            instance_id = record.get("uuid")
            if instance_id not in wanted or is_terminal(record):
                continue

            addresses = extract_addresses(record)
            if not addresses:
                self.log.warning("instance %s has no usable network interfaces", instance_id)
                count = self.retries.record(instance_id)
                if self.retries.exhausted(count):
                    self.log.warning(
                        "dropping instance %s: still incomplete after %d attempts",
                        instance_id,
                        count,
                    )
                else:
                    retry_batch.instance_ids.append(instance_id)
                continue

            tag = member_tag(self.application, self.service, instance_id, self.tag_prefix)
            self.pool.publish(tag, addresses)
            self.retries.reclaim(instance_id)
            published.append(instance_id)
            if self.metrics is not None:
                self.metrics.record_publish("add")

        if retry_batch.instance_ids:
            self.queue.append(retry_batch)
            raise IncompleteDataError(retry_batch.instance_ids, batch.location)

        return published
