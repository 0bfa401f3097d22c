"""
Service tracker

Polls a directory service for the live instances of named services, resolves
their network addresses through per-location inventory services and publishes
membership changes to an address pool.
"""

from .addresses import BatchAddressResolver, build_predicate, extract_addresses
from .config import AppConfig, HTTPClientConfig, LoggingConfig, TrackerConfig, load_config
from .directory import DirectoryResolver
from .enumerator import EnumerationResult, InstanceEnumerator, diff_snapshots
from .errors import (
    AmbiguousNameError,
    ConfigurationError,
    IncompleteDataError,
    TrackerError,
    TransportError,
    UnresolvableLocationError,
    ValidationError,
)
from .manager import TrackerManager
from .metrics import TrackerMetrics
from .models import (
    MAX_BATCH_SIZE,
    MAX_INSTANCE_RETRIES,
    Application,
    Instance,
    PendingBatch,
    PollerState,
    PollState,
    RetryCounter,
    Service,
)
from .pool import AddressPool, InMemoryAddressPool, member_tag, removal_tag
from .scheduler import PollScheduler, wake_deadline
from .transport import HttpTransport, JsonClient, LocationClients

__version__ = "1.0.0"

__all__ = [
    "AddressPool",
    "AmbiguousNameError",
    "AppConfig",
    "Application",
    "BatchAddressResolver",
    "ConfigurationError",
    "DirectoryResolver",
    "EnumerationResult",
    "HTTPClientConfig",
    "HttpTransport",
    "InMemoryAddressPool",
    "IncompleteDataError",
    "Instance",
    "InstanceEnumerator",
    "JsonClient",
    "LocationClients",
    "LoggingConfig",
    "MAX_BATCH_SIZE",
    "MAX_INSTANCE_RETRIES",
    "PendingBatch",
    "PollScheduler",
    "PollState",
    "PollerState",
    "RetryCounter",
    "Service",
    "TrackerConfig",
    "TrackerError",
    "TrackerManager",
    "TrackerMetrics",
    "TransportError",
    "UnresolvableLocationError",
    "ValidationError",
    "build_predicate",
    "diff_snapshots",
    "extract_addresses",
    "load_config",
    "member_tag",
    "removal_tag",
    "wake_deadline",
]
