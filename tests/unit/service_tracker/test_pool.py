from service_tracker.pool import InMemoryAddressPool, member_tag, removal_tag


def test_tag_formats() -> None:
    assert member_tag("manta", "moray", "i-1") == "manta:moray:i-1"
    assert member_tag("manta", "moray", "i-1", prefix="sapi:") == "sapi:manta:moray:i-1"
    assert removal_tag("i-1") == "i-1"
    assert removal_tag("i-1", prefix="sapi:") == "sapi:i-1"


def test_publish_same_set_twice_is_idempotent() -> None:
    changes = []
    pool = InMemoryAddressPool(on_change=lambda tag, addresses: changes.append((tag, addresses)))

    pool.publish("t", ["10.0.0.1", "10.0.0.2"])
    first = pool.snapshot()
    pool.publish("t", ["10.0.0.2", "10.0.0.1"])

    assert pool.snapshot() == first
    assert changes == [("t", frozenset({"10.0.0.1", "10.0.0.2"}))]
    assert pool.publish_count == 2


def test_empty_set_removes_tag() -> None:
    pool = InMemoryAddressPool()
    pool.publish("t", ["10.0.0.1"])

    pool.publish("t", [])

    assert "t" not in pool
    assert pool.get("t") == frozenset()


def test_removing_unknown_tag_is_a_no_op() -> None:
    changes = []
    pool = InMemoryAddressPool(on_change=lambda tag, addresses: changes.append(tag))

    pool.publish("missing", [])

    assert changes == []
    assert len(pool) == 0


def test_republish_replaces_addresses() -> None:
    pool = InMemoryAddressPool()
    pool.publish("t", ["10.0.0.1"])

    pool.publish("t", ["10.0.0.9"])

    assert pool.snapshot() == {"t": ["10.0.0.9"]}
