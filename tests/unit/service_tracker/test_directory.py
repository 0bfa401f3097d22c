import pytest
from conftest import APP_ID, SERVICE_ID, FakeJsonClient, directory_routes, instance_record

from service_tracker.directory import DirectoryResolver
from service_tracker.errors import AmbiguousNameError, TransportError


@pytest.mark.asyncio
async def test_resolve_application_and_service() -> None:
    client = FakeJsonClient(routes=directory_routes([]))
    resolver = DirectoryResolver(client)

    application = await resolver.resolve_application("manta")
    service = await resolver.resolve_service("moray", application.id)

    assert application.id == APP_ID
    assert application.fallback_location is None
    assert service.id == SERVICE_ID
    assert service.application_id == APP_ID
    assert client.calls_to("/applications") == [{"name": "manta", "include_master": "1"}]
    assert client.calls_to("/services") == [
        {"name": "moray", "application_uuid": APP_ID, "include_master": "1"}
    ]


@pytest.mark.asyncio
async def test_primary_application_reads_fallback_location_without_master_records() -> None:
    client = FakeJsonClient(routes=directory_routes([]))
    resolver = DirectoryResolver(client, primary_application="sdc")

    application = await resolver.resolve_application("sdc")
    await resolver.resolve_service("manatee", application.id)
    await resolver.list_instances(SERVICE_ID)

    assert application.fallback_location == "us-west-1"
    assert resolver.fallback_location == "us-west-1"
    assert all("include_master" not in params for _, params in client.calls)


@pytest.mark.asyncio
async def test_resolution_is_cached() -> None:
    client = FakeJsonClient(routes=directory_routes([]))
    resolver = DirectoryResolver(client)

    await resolver.resolve_application("manta")
    await resolver.resolve_application("manta")
    await resolver.resolve_service("moray", APP_ID)
    await resolver.resolve_service("moray", APP_ID)

    assert len(client.calls_to("/applications")) == 1
    assert len(client.calls_to("/services")) == 1


@pytest.mark.asyncio
async def test_ambiguous_service_name() -> None:
    routes = directory_routes([], **{"/services": [{"uuid": "s-1"}, {"uuid": "s-2"}]})
    resolver = DirectoryResolver(FakeJsonClient(routes=routes))
    await resolver.resolve_application("manta")

    with pytest.raises(AmbiguousNameError) as exc_info:
        await resolver.resolve_service("moray", APP_ID)

    assert exc_info.value.kind == "service"
    assert exc_info.value.count == 2
    assert resolver.application_id == APP_ID
    assert resolver.service_id is None


@pytest.mark.asyncio
async def test_missing_application_is_ambiguous() -> None:
    resolver = DirectoryResolver(FakeJsonClient(routes=directory_routes([], **{"/applications": []})))

    with pytest.raises(AmbiguousNameError):
        await resolver.resolve_application("manta")

    assert resolver.application_id is None


@pytest.mark.asyncio
async def test_malformed_response_is_transport_error() -> None:
    resolver = DirectoryResolver(
        FakeJsonClient(routes=directory_routes([], **{"/applications": {"uuid": APP_ID}}))
    )

    with pytest.raises(TransportError):
        await resolver.resolve_application("manta")


@pytest.mark.asyncio
async def test_list_instances_parses_records() -> None:
    client = FakeJsonClient(
        routes=directory_routes([instance_record("i-1", "dc1", "1"), instance_record("i-2", None)])
    )
    resolver = DirectoryResolver(client)
    await resolver.resolve_application("manta")

    instances = await resolver.list_instances(SERVICE_ID)

    assert [i.id for i in instances] == ["i-1", "i-2"]
    assert instances[0].location == "dc1"
    assert instances[0].shard == "1"
    assert instances[1].location is None
    assert client.calls_to("/instances") == [{"service_uuid": SERVICE_ID, "include_master": "1"}]


@pytest.mark.asyncio
async def test_list_instances_rejects_records_without_uuid() -> None:
    resolver = DirectoryResolver(FakeJsonClient(routes=directory_routes([{"metadata": {}}])))

    with pytest.raises(TransportError):
        await resolver.list_instances(SERVICE_ID)


@pytest.mark.asyncio
async def test_reset_clears_resolution() -> None:
    resolver = DirectoryResolver(FakeJsonClient(routes=directory_routes([])))
    await resolver.resolve_application("manta")
    await resolver.resolve_service("moray", APP_ID)

    resolver.reset()

    assert resolver.application_id is None
    assert resolver.service_id is None
