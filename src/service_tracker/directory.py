"""
Directory resolution: application and service names to ids, and instance listing.

Names are resolved once and cached for the life of the resolver. Downstream
failures do not invalidate a resolution; only ``reset()`` clears it.
"""

import builtins
import logging
from typing import Any

from .errors import AmbiguousNameError, TransportError
from .models import Application, Instance, Service, require_records

logger = logging.getLogger(__name__)


class DirectoryResolver:
    """Resolves application/service identity against the directory service."""

    def __init__(self, client, primary_application: str = "sdc", log_extra=None):
        self.client = client
        self.log = logging.LoggerAdapter(logger, log_extra or {})
        self.primary_application = primary_application
        self.application: Application | None = None
        self.service: Service | None = None

    @property
    def application_id(self) -> str | None:
        return self.application.id if self.application else None

    @property
    def service_id(self) -> str | None:
        return self.service.id if self.service else None

    @property
    def fallback_location(self) -> str | None:
        return self.application.fallback_location if self.application else None

    def _params(self, application_name: str, **params: str) -> builtins.dict[str, str]:
        # Records not yet promoted to master are only wanted outside the
        # primary application.
        if application_name != self.primary_application:
            params["include_master"] = "1"
        return params

    async def _fetch(self, path: str, params: builtins.dict[str, str], what: str):
        objs = await self.client.get_json(path, params)
        return require_records(objs, what)

    @staticmethod
    def _single(objs: builtins.list[builtins.dict[str, Any]], kind: str, name: str):
        if len(objs) != 1:
            raise AmbiguousNameError(kind, name, len(objs))
        if "uuid" not in objs[0]:
            raise TransportError(f"directory {kind} record for {name!r} has no uuid")
        return objs[0]

    async def resolve_application(self, name: str) -> Application:
        """Resolve an application name to its id."""
        if self.application is not None and self.application.name == name:
            return self.application

        objs = await self._fetch("/applications", self._params(name, name=name), "application")
        record = self._single(objs, "application", name)

        self.application = Application.from_record(
            name, record, read_location=(name == self.primary_application)
        )
        self.log.info("Resolved application %s to %s", name, self.application.id)
        return self.application

    async def resolve_service(self, name: str, application_id: str) -> Service:
        """Resolve a service name, scoped to an application, to its id."""
        if (
            self.service is not None
            and self.service.name == name
            and self.service.application_id == application_id
        ):
            return self.service

        application_name = self.application.name if self.application else ""
        params = self._params(application_name, name=name, application_uuid=application_id)
        objs = await self._fetch("/services", params, "service")
        record = self._single(objs, "service", name)

        self.service = Service.from_record(name, application_id, record)
        self.log.info("Resolved service %s to %s", name, self.service.id)
        return self.service

    async def list_instances(self, service_id: str) -> builtins.list[Instance]:
        """List the instances currently registered for a service."""
        application_name = self.application.name if self.application else ""
        params = self._params(application_name, service_uuid=service_id)
        objs = await self._fetch("/instances", params, "instance")

        try:
            return [Instance.from_record(obj) for obj in objs]
        except (KeyError, AttributeError) as e:
            raise TransportError(f"malformed instance record in directory response: {e}") from e

    def reset(self) -> None:
        self.application = None
        self.service = None
