from __future__ import annotations

from datetime import timedelta

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from src.unicore.db.codecs import PAYOUT_CODEC, VIRTUAL_MACHINE_CODEC
from src.unicore.db.query import DocumentQuery
from src.unicore.db.repository import DocumentRepository, PageCursor
from src.unicore.errors import InvalidInputError, StorageError
from src.unicore.schemas.common import utc_now
from src.unicore.schemas.payouts import Payout, PayoutStatus
from src.unicore.schemas.vms import VirtualMachine, VmStatus


@pytest.fixture
def vm_repo(registry) -> DocumentRepository[VirtualMachine]:
    return registry.repository(VirtualMachine)


@pytest.fixture
def payout_repo(registry) -> DocumentRepository[Payout]:
    return registry.repository(Payout)


def _vm(vm_id: str, **kw) -> VirtualMachine:
    values = {"name": f"vm {vm_id}", "cpu_cores": 4, "ram_gb": 16, "status": VmStatus.running}
    values.update(kw)
    return VirtualMachine(vm_id=vm_id, **values)


def test_get_missing_returns_none(vm_repo):
    assert vm_repo.get("nope") is None


def test_create_with_id_rule_then_get(vm_repo):
    vm = _vm("vm-1", client="Acme", cpu_history=[1.0, 2.0])
    assert vm_repo.create(vm) == "vm-1"

    fetched = vm_repo.get("vm-1")
    assert fetched is not None
    assert fetched.model_dump() == vm.model_dump()


def test_create_with_id_rule_overwrites_existing_document(vm_repo):
    vm_repo.create(_vm("vm-1", name="first", client="Acme"))
    vm_repo.create(_vm("vm-1", name="second"))

    fetched = vm_repo.get("vm-1")
    assert fetched.name == "second"
    # Full replacement: fields not on the new entity fall back to defaults.
    assert fetched.client == "Unknown"
    assert len(vm_repo.list()) == 1


def test_create_rejects_empty_derived_id(vm_repo):
    with pytest.raises(InvalidInputError):
        vm_repo.create(_vm(""))


def test_create_without_id_rule_generates_unique_ids(payout_repo):
    a = payout_repo.create(Payout(amount=10, method="bank_transfer"))
    b = payout_repo.create(Payout(amount=20, method="bank_transfer"))

    assert a and b and a != b
    assert payout_repo.get(a).amount == 10
    assert payout_repo.get(a).id == a


def test_stored_layout_uses_mapped_field_names(payout_repo, vm_repo, mongo_db):
    pid = payout_repo.create(Payout(amount=42.5, method="paypal", status=PayoutStatus.processing))
    raw = mongo_db["payouts"].find_one({"_id": pid})
    assert raw["payment_method"] == "paypal"
    assert raw["status"] == "Processing"
    assert "method" not in raw
    assert "id" not in raw

    vm_repo.create(_vm("vm-7", current_cpu_usage=12.5))
    raw_vm = mongo_db["virtual_machines"].find_one({"_id": "vm-7"})
    assert raw_vm["cpu_usage"] == 12.5
    assert raw_vm["status"] == "Running"
    assert "vm_id" not in raw_vm
    assert "current_cpu_usage" not in raw_vm


def test_datetimes_come_back_timezone_aware(payout_repo):
    when = utc_now()
    pid = payout_repo.create(Payout(date=when, amount=5, method="paypal"))
    stored = payout_repo.get(pid).date
    assert stored.tzinfo is not None
    # BSON dates have millisecond precision.
    assert abs(stored - when) < timedelta(milliseconds=1)


def test_update_merges_only_given_fields(vm_repo):
    vm_repo.create(_vm("vm-1", client="Acme", cost_per_hour=1.5))

    vm_repo.update("vm-1", {"name": "renamed"})
    fetched = vm_repo.get("vm-1")
    assert fetched.name == "renamed"
    assert fetched.client == "Acme"
    assert fetched.cost_per_hour == 1.5

    vm_repo.update("vm-1", VirtualMachine(status=VmStatus.paused))
    fetched = vm_repo.get("vm-1")
    assert fetched.status == "Paused"
    assert fetched.name == "renamed"


def test_update_on_missing_document_creates_it(vm_repo):
    vm_repo.update("ghost", {"name": "appeared"})
    fetched = vm_repo.get("ghost")
    assert fetched is not None
    assert fetched.name == "appeared"


def test_update_rejects_unknown_or_invalid_fields(vm_repo):
    vm_repo.create(_vm("vm-1"))
    with pytest.raises(InvalidInputError):
        vm_repo.update("vm-1", {"colour": "blue"})
    with pytest.raises(InvalidInputError):
        vm_repo.update("vm-1", {"current_cpu_usage": 140})


def test_delete_is_idempotent(vm_repo):
    vm_repo.create(_vm("vm-1"))
    vm_repo.delete("vm-1")
    vm_repo.delete("vm-1")
    assert vm_repo.get("vm-1") is None


def test_where_equal_filters_on_stored_values(vm_repo):
    vm_repo.create(_vm("a", status=VmStatus.running))
    vm_repo.create(_vm("b", status=VmStatus.stopped))
    vm_repo.create(_vm("c", status=VmStatus.running))

    running = vm_repo.where_equal("status", VmStatus.running)
    assert sorted(v.vm_id for v in running) == ["a", "c"]
    assert vm_repo.where_equal("status", "Paused") == []


def test_where_equal_on_key_attribute(vm_repo):
    vm_repo.create(_vm("a"))
    vm_repo.create(_vm("b"))
    assert [v.vm_id for v in vm_repo.where_equal("vm_id", "b")] == ["b"]


def test_fetch_with_range_order_and_limit(vm_repo):
    for i, cost in enumerate([3.0, 1.0, 5.0, 2.0]):
        vm_repo.create(_vm(f"vm-{i}", cost_per_hour=cost))

    query = vm_repo.query().where("cost_per_hour", ">=", 2.0).order_by("cost_per_hour", "desc").limit(2)
    assert [v.cost_per_hour for v in vm_repo.fetch(query)] == [5.0, 3.0]


def test_first_matching_returns_first_or_none(vm_repo):
    vm_repo.create(_vm("a", current_cpu_usage=40))
    vm_repo.create(_vm("b", current_cpu_usage=90))

    hottest = vm_repo.first_matching(lambda q: q.order_by("current_cpu_usage", "desc"))
    assert hottest.vm_id == "b"
    assert vm_repo.first_matching(lambda q: q.where_equal("client", "Nobody")) is None


def test_base_query_is_not_affected_by_refinement(vm_repo):
    base = vm_repo.query()
    refined = base.where_equal("status", "Running").limit(3)
    assert base == DocumentQuery()
    assert refined.max_results == 3


def test_query_rejects_bad_operator_and_limit(vm_repo):
    with pytest.raises(InvalidInputError):
        vm_repo.query().where("status", "~=", "Running")
    with pytest.raises(InvalidInputError):
        vm_repo.query().where("status", "in", "Running")
    with pytest.raises(InvalidInputError):
        vm_repo.query().limit(0)


def test_query_translation_renames_fields():
    q = DocumentQuery().where("current_cpu_usage", ">", 50).where("status", "in", [VmStatus.running])
    rename = VIRTUAL_MACHINE_CODEC.field_name
    assert q.to_filter(rename) == {"$and": [{"cpu_usage": {"$gt": 50}}, {"status": {"$in": ["Running"]}}]}
    assert DocumentQuery().order_by("vm_id").to_sort(rename) == [("_id", 1)]
    assert PAYOUT_CODEC.field_name("method") == "payment_method"


def test_pages_cover_every_document_exactly_once(vm_repo):
    ids = {f"vm-{i:02d}" for i in range(7)}
    for vm_id in ids:
        vm_repo.create(_vm(vm_id))

    seen = []
    cursor = None
    while True:
        page = vm_repo.page(3, cursor)
        assert len(page.items) <= 3
        seen.extend(v.vm_id for v in page.items)
        if len(page.items) < 3:
            break
        cursor = page.next_cursor

    assert sorted(seen) == sorted(ids)
    assert len(seen) == len(ids)
    assert seen == sorted(seen)


def test_empty_page_has_no_cursor(vm_repo):
    page = vm_repo.page(5)
    assert page.items == []
    assert page.next_cursor is None


def test_page_size_must_be_positive(vm_repo):
    with pytest.raises(InvalidInputError):
        vm_repo.page(0)


SIGNING_KEY = b"cursor-test-key"


def test_cursor_token_is_opaque_and_parseable():
    cursor = PageCursor("vm-42")
    token = cursor.to_token(SIGNING_KEY)
    assert "vm-42" not in token
    assert PageCursor.from_token(token, SIGNING_KEY) == cursor


@pytest.mark.parametrize("token", ["", "   ", "%%%%", "_w", "dm0tNDI", "dm0tNDI.", ".abcd", "dm0tNDI.%%%%"])
def test_malformed_cursor_rejected(token: str):
    with pytest.raises(InvalidInputError):
        PageCursor.from_token(token, SIGNING_KEY)


def test_cursor_signed_with_another_key_is_rejected():
    token = PageCursor("vm-42").to_token(b"some-other-key")
    with pytest.raises(InvalidInputError):
        PageCursor.from_token(token, SIGNING_KEY)


def test_cursor_with_swapped_key_is_rejected():
    genuine = PageCursor("vm-42").to_token(SIGNING_KEY)
    other_payload = PageCursor("vm-00").to_token(SIGNING_KEY).split(".")[0]
    forged = f"{other_payload}.{genuine.split('.')[1]}"
    with pytest.raises(InvalidInputError):
        PageCursor.from_token(forged, SIGNING_KEY)


def test_update_if_writes_only_while_expected_values_hold(payout_repo):
    pid = payout_repo.create(Payout(amount=10, method="paypal"))

    assert payout_repo.update_if(pid, {"status": PayoutStatus.pending}, {"status": PayoutStatus.processing})
    assert payout_repo.get(pid).status == PayoutStatus.processing

    assert not payout_repo.update_if(pid, {"status": PayoutStatus.pending}, {"status": PayoutStatus.failed})
    assert payout_repo.get(pid).status == PayoutStatus.processing


def test_update_if_matches_on_stored_field_names(payout_repo):
    pid = payout_repo.create(Payout(amount=10, method="paypal"))
    assert payout_repo.update_if(pid, {"method": "paypal"}, {"amount": 12})
    assert payout_repo.get(pid).amount == 12


def test_update_if_never_creates_a_document(payout_repo, mongo_db):
    assert not payout_repo.update_if("ghost", {"status": PayoutStatus.pending}, {"status": PayoutStatus.processing})
    assert payout_repo.get("ghost") is None
    assert mongo_db["payouts"].count_documents({}) == 0



class _FailingCollection:
    """Collection stand-in whose every call fails like an unreachable server."""

    name = "virtual_machines"

    def _fail(self, *args, **kwargs):
        raise ServerSelectionTimeoutError("no servers available")

    find_one = find = insert_one = replace_one = update_one = delete_one = _fail


def test_driver_failures_surface_as_storage_error():
    repo = DocumentRepository(_FailingCollection(), VIRTUAL_MACHINE_CODEC, id_rule=lambda vm: vm.vm_id)

    with pytest.raises(StorageError) as excinfo:
        repo.get("vm-1")
    assert isinstance(excinfo.value.__cause__, ServerSelectionTimeoutError)

    with pytest.raises(StorageError):
        repo.create(_vm("vm-1"))
    with pytest.raises(StorageError):
        repo.update("vm-1", {"name": "x"})
    with pytest.raises(StorageError):
        repo.delete("vm-1")
    with pytest.raises(StorageError):
        repo.page(10)
