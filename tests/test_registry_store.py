import threading
from datetime import datetime, timezone

import pytest

from dnc_scrubber.models import LITIGATOR_SOURCE, NATIONAL_SOURCE, AuthorizedScope, PhoneKey
from dnc_scrubber.registry.store import RegistryStore, RegistryUnavailableError

WHEN = datetime(2024, 1, 15, tzinfo=timezone.utc)
LATER = datetime(2024, 2, 1, tzinfo=timezone.utc)
PHONE = PhoneKey("2125550199")


@pytest.fixture()
def scope():
    return AuthorizedScope(area_codes=frozenset({"212", "646"}))


def test_add_then_lookup(scope):
    store = RegistryStore()
    with store.update({"212"}, change_list_id="cl-1") as update:
        assert update.add(PHONE, NATIONAL_SOURCE, "212", WHEN)

    matches = store.lookup(PHONE, "212", scope)
    assert set(matches) == {NATIONAL_SOURCE}
    assert matches[NATIONAL_SOURCE].added_by == "cl-1"
    assert store.is_listed(PHONE, "212", scope) == frozenset({NATIONAL_SOURCE})
    assert store.version == 1


def test_duplicate_add_is_skipped(scope):
    store = RegistryStore()
    with store.update({"212"}) as update:
        assert update.add(PHONE, NATIONAL_SOURCE, "212", WHEN)
        assert not update.add(PHONE, NATIONAL_SOURCE, "212", WHEN)
    with store.update({"212"}) as update:
        assert not update.add(PHONE, NATIONAL_SOURCE, "212", LATER)

    assert store.snapshot().count_active(NATIONAL_SOURCE) == 1


def test_remove_is_soft_and_keeps_history(scope):
    store = RegistryStore()
    with store.update({"212"}) as update:
        update.add(PHONE, NATIONAL_SOURCE, "212", WHEN)
    with store.update({"212"}, change_list_id="cl-2") as update:
        assert update.remove(PHONE, NATIONAL_SOURCE, "212", LATER)
        assert not update.remove(PHONE, NATIONAL_SOURCE, "212", LATER)

    assert store.lookup(PHONE, "212", scope) == {}
    history = store.history(PHONE)
    assert len(history) == 1
    assert history[0].removed_at == LATER
    assert history[0].removed_by == "cl-2"
    assert not history[0].active


def test_readers_keep_their_snapshot_during_writes(scope):
    store = RegistryStore()
    before = store.snapshot()
    with store.update({"212"}) as update:
        update.add(PHONE, NATIONAL_SOURCE, "212", WHEN)
        assert store.lookup(PHONE, "212", scope) == {}

    assert before.lookup(PHONE, "212", scope) == {}
    assert set(store.lookup(PHONE, "212", scope)) == {NATIONAL_SOURCE}


def test_lookup_is_limited_to_authorized_scope_except_litigators():
    store = RegistryStore()
    with store.update({"212"}) as update:
        update.add(PHONE, NATIONAL_SOURCE, "212", WHEN)
        update.add(PHONE, LITIGATOR_SOURCE, "212", WHEN)

    national_only = AuthorizedScope(area_codes=frozenset({"212"}), sources=frozenset({NATIONAL_SOURCE}))
    other_area = AuthorizedScope(area_codes=frozenset({"646"}))

    assert set(store.lookup(PHONE, "212", national_only)) == {NATIONAL_SOURCE, LITIGATOR_SOURCE}
    assert set(store.lookup(PHONE, "212", other_area)) == {LITIGATOR_SOURCE}
    assert store.is_listed(PHONE, "212", other_area) == frozenset({LITIGATOR_SOURCE})


def test_update_outside_locked_area_codes_is_refused():
    store = RegistryStore()
    with pytest.raises(ValueError):
        with store.update({"646"}) as update:
            update.add(PHONE, NATIONAL_SOURCE, "212", WHEN)


def test_phone_must_belong_to_the_area_code_it_is_filed_under(scope):
    store = RegistryStore()
    other = PhoneKey("6465550123")
    with pytest.raises(ValueError):
        with store.update({"212"}) as update:
            update.add(other, NATIONAL_SOURCE, "212", WHEN)
    with pytest.raises(ValueError):
        with store.update({"212"}) as update:
            update.remove(other, NATIONAL_SOURCE, "212", WHEN)

    assert store.lookup(other, "646", scope) == {}
    assert store.version == 0


def test_partial_update_is_published_when_writer_fails(scope):
    store = RegistryStore()
    other = PhoneKey("2125550123")
    with pytest.raises(RuntimeError):
        with store.update({"212"}) as update:
            update.add(PHONE, NATIONAL_SOURCE, "212", WHEN)
            raise RuntimeError("boom")
    with store.update({"212"}) as update:
        update.add(other, NATIONAL_SOURCE, "212", WHEN)

    assert store.is_listed(PHONE, "212", scope) == frozenset({NATIONAL_SOURCE})
    assert store.is_listed(other, "212", scope) == frozenset({NATIONAL_SOURCE})


def test_unavailable_store_raises(scope):
    store = RegistryStore()
    store.set_available(False)

    with pytest.raises(RegistryUnavailableError):
        store.lookup(PHONE, "212", scope)

    store.set_available(True)
    assert store.lookup(PHONE, "212", scope) == {}


def test_concurrent_writers_on_disjoint_area_codes(scope):
    store = RegistryStore()
    numbers = {
        "212": [PhoneKey(f"212555{n:04d}") for n in range(50)],
        "646": [PhoneKey(f"646555{n:04d}") for n in range(50)],
    }

    def write(area_code):
        for phone in numbers[area_code]:
            with store.update({area_code}) as update:
                update.add(phone, NATIONAL_SOURCE, area_code, WHEN)

    threads = [threading.Thread(target=write, args=(code,)) for code in numbers]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.snapshot().count_active() == 100
    assert store.version == 100
    entry_ids = {entry.entry_id for phones in numbers.values() for phone in phones for entry in store.history(phone)}
    assert len(entry_ids) == 100
