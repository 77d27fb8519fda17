import hashlib
import os

import pytest

from chat_core.codec import Content, decode_header, encode_header, Header
from chat_core.errors import FormatError, NotFoundError, StorageIOError, ValidationError
from chat_core.protocol import HEADER_LEN, MAXIMUM_MESSAGE_SIZE, RECORD_LEN
from chat_store.engine import Storage
from chat_store.notify import Notifier


def msg(text: str, ts: int = 1_700_000_000) -> Content:
    return Content(created_at=ts, updated_at=ts, content=text.encode("utf-8"))


def on_disk_header(storage: Storage) -> Header:
    return decode_header(storage.path.read_bytes()[:HEADER_LEN])


@pytest.fixture
def storage(tmp_path):
    s = Storage(tmp_path / "chat")
    s.initialize()
    s.notifier.drain()
    return s


def test_initialize_creates_folder_and_header(tmp_path):
    s = Storage(tmp_path / "nested" / "chat")
    s.initialize()

    assert s.path.read_bytes() == b"CHAT\x00\x00\x00\x01" + b"\x00" * 8
    h = on_disk_header(s)
    assert (h.magic, h.version, h.record, h.count) == (b"CHAT", 1, 0, 0)
    assert s.notifier.drain() == ["Creating database...", "Database created successfully"]


def test_initialize_twice_is_idempotent(tmp_path):
    first = Storage(tmp_path)
    first.initialize()
    before = first.path.read_bytes()

    second = Storage(tmp_path)
    second.initialize()

    assert second.notifier.drain() == ["Database already exists"]
    assert second.path.read_bytes() == before
    assert second.header == first.header


def test_initialize_loads_existing_counters(storage):
    storage.store(0, msg("a"))
    storage.store(0, msg("b"))

    reopened = Storage(storage.root)
    reopened.initialize()
    assert reopened.header.count == 2
    assert reopened.get_ids() == [1, 2]


def test_initialize_rejects_foreign_file(tmp_path):
    (tmp_path / "chat.db").write_bytes(b"NOPE" + b"\x00" * 12)
    with pytest.raises(FormatError):
        Storage(tmp_path).initialize()


def test_initialize_rejects_short_header(tmp_path):
    (tmp_path / "chat.db").write_bytes(b"CHA")
    with pytest.raises(FormatError):
        Storage(tmp_path).initialize()


def test_initialize_fails_when_folder_is_a_file(tmp_path):
    blocker = tmp_path / "chat"
    blocker.write_text("not a folder")
    with pytest.raises(StorageIOError):
        Storage(blocker).initialize()


def test_check(tmp_path):
    s = Storage(tmp_path)
    with pytest.raises(NotFoundError):
        s.check()
    s.initialize()
    s.check()


def test_hello_world_scenario(storage):
    rid = storage.store(0, msg("Hello, world!"))

    assert rid == 1
    assert storage.get_ids() == [1]
    got = storage.get(1)
    assert got.length == 13
    assert got.content[:13] == b"Hello, world!"
    assert got.id == 1
    assert storage.notifier.drain() == ["Stored message with ID 1"]


def test_allocation_is_monotonic(storage):
    ids = [storage.store(0, msg(f"turn {i}")) for i in range(5)]

    assert ids == [1, 2, 3, 4, 5]
    h = on_disk_header(storage)
    assert h.count == 5
    assert h.record == 5
    assert storage.get(4).content == b"turn 3"


def test_allocation_ignores_content_id(storage):
    rid = storage.store(0, Content(id=77, content=b"x"))
    assert rid == 1
    assert storage.get(1).id == 1


def test_overwrite_in_place(storage):
    storage.store(5, msg("first"))
    storage.store(5, msg("second, longer", ts=1_700_000_100))

    got = storage.get(5)
    assert got.content == b"second, longer"
    assert got.updated_at == 1_700_000_100
    assert on_disk_header(storage).count == 0
    assert storage.get_ids() == []
    assert storage.path.stat().st_size == storage.offset(5) + RECORD_LEN


def test_overwrite_of_allocated_record(storage):
    rid = storage.store(0, msg("draft"))
    assert storage.store(rid, msg("final")) == rid
    assert storage.get(rid).content == b"final"
    assert on_disk_header(storage).count == 1


def test_sparse_write_past_end(storage):
    storage.store(3, msg("far away"))
    assert storage.path.stat().st_size == HEADER_LEN + 4 * RECORD_LEN
    with pytest.raises(NotFoundError, match="never written"):
        storage.get(2)


def test_oversize_rejected_and_file_untouched(storage):
    storage.store(0, msg("keep me"))
    before = hashlib.sha256(storage.path.read_bytes()).hexdigest()
    size = storage.path.stat().st_size

    with pytest.raises(ValidationError):
        storage.store(0, Content(content=b"x" * (MAXIMUM_MESSAGE_SIZE + 1)))
    with pytest.raises(ValidationError):
        storage.store(1, Content(content=b"x" * (MAXIMUM_MESSAGE_SIZE + 1)))

    assert hashlib.sha256(storage.path.read_bytes()).hexdigest() == before
    assert storage.path.stat().st_size == size
    assert storage.header.count == 1


def test_get_beyond_extent(storage):
    storage.store(0, msg("only one"))
    with pytest.raises(NotFoundError, match="beyond file length"):
        storage.get(99)


def test_get_reserved_id(storage):
    with pytest.raises(NotFoundError):
        storage.get(0)


@pytest.mark.parametrize("rid", [-1, 2**32, True])
def test_identifiers_out_of_range(storage, rid):
    with pytest.raises(ValidationError):
        storage.store(rid, msg("x"))
    with pytest.raises(ValidationError):
        storage.get(rid)


def test_get_detects_drift(storage):
    storage.store(0, msg("a"))
    b = bytearray(storage.path.read_bytes())
    b[storage.offset(1) + 3] ^= 0x01
    storage.path.write_bytes(bytes(b))

    with pytest.raises(FormatError, match="drift"):
        storage.get(1)


def test_get_detects_bad_length(storage):
    storage.store(0, msg("a"))
    b = bytearray(storage.path.read_bytes())
    off = storage.offset(1) + 20
    b[off:off + 2] = (MAXIMUM_MESSAGE_SIZE + 1).to_bytes(2, "big")
    storage.path.write_bytes(bytes(b))

    with pytest.raises(FormatError, match="exceeds capacity"):
        storage.get(1)


def test_get_detects_torn_record(storage):
    storage.store(0, msg("a"))
    with open(storage.path, "r+b") as f:
        f.truncate(storage.offset(1) + 10)

    with pytest.raises(FormatError, match="Torn"):
        storage.get(1)


def test_store_reports_io_error_when_file_vanishes(storage):
    os.remove(storage.path)
    with pytest.raises(StorageIOError):
        storage.store(0, msg("lost"))


def test_store_without_initialize_loads_header(storage):
    storage.store(0, msg("a"))
    fresh = Storage(storage.root)
    assert fresh.store(0, msg("b")) == 2


def test_store_on_missing_store(tmp_path):
    with pytest.raises(NotFoundError):
        Storage(tmp_path).store(0, msg("a"))


def test_notifications_never_block(tmp_path):
    s = Storage(tmp_path, notifier=Notifier(maxlen=2))
    s.initialize()
    for i in range(5):
        s.store(0, msg(str(i)))

    assert s.notifier.drain() == ["Stored message with ID 4", "Stored message with ID 5"]
    assert s.notifier.dropped == 5


def test_store_after_close(storage):
    storage.close()
    assert storage.store(0, msg("still works")) == 1
    assert storage.notifier.wait_next() is None


def test_small_capacity_store(tmp_path):
    s = Storage(tmp_path, capacity=8)
    s.initialize()
    s.store(0, msg("12345678"))
    assert s.path.stat().st_size == HEADER_LEN + 2 * 30
    with pytest.raises(ValidationError):
        s.store(0, msg("123456789"))


def test_header_rewritten_only_on_allocation(storage):
    storage.store(0, msg("a"))
    raw = storage.path.read_bytes()[:HEADER_LEN]
    assert raw == encode_header(Header(record=1, count=1))
    storage.store(1, msg("b"))
    assert storage.path.read_bytes()[:HEADER_LEN] == raw
