"""
Error taxonomy for the service tracker.

Faults raised while polling are absorbed by the scheduler: ``TransportError``,
``AmbiguousNameError`` and ``IncompleteDataError`` drive the fault state with
exponential backoff, while ``UnresolvableLocationError`` is only logged.
Configuration errors are raised at load time and never reach the poll loop.
"""

import builtins


class TrackerError(Exception):
    """Base class for all service tracker errors."""


class TransportError(TrackerError):
    """Network or protocol failure on a remote call."""

    def __init__(self, message: str, url: str | None = None, status: int | None = None):
        super().__init__(message)
        self.url = url
        self.status = status


class AmbiguousNameError(TrackerError):
    """Directory lookup returned other than exactly one match."""

    def __init__(self, kind: str, name: str, count: int):
        super().__init__(f'ambiguous directory {kind} name: "{name}" ({count} matches)')
        self.kind = kind
        self.name = name
        self.count = count


class IncompleteDataError(TrackerError):
    """Address records were found but lacked usable network interfaces."""

    def __init__(self, instance_ids: builtins.list[str], location: str):
        super().__init__(
            f"inventory data in {location} was missing interface information, "
            f"retrying {len(instance_ids)} instance(s)"
        )
        self.instance_ids = list(instance_ids)
        self.location = location


class UnresolvableLocationError(TrackerError):
    """An instance has no location of its own and no fallback is known."""

    def __init__(self, instance_id: str):
        super().__init__(f"cannot determine location for instance {instance_id}")
        self.instance_id = instance_id


class ConfigurationError(TrackerError):
    """Base configuration error."""


class ValidationError(ConfigurationError):
    """Configuration validation error."""
