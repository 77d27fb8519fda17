"""Single-file chat store: fixed header + fixed-size records addressed by identifier.

Layout:
    offset 0                    Header (16 bytes)
    offset 16 + id * RECORD_LEN Content record <id>

Identifier 0 is never stored; passing it to store() allocates the next identifier.
"""
from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path

from chat_core.codec import (
    Content,
    Header,
    decode_header,
    decode_record,
    encode_header,
    encode_record,
    record_len,
    record_offset,
)
from chat_core.errors import FormatError, NotFoundError, StorageIOError, ValidationError
from chat_core.protocol import DB_NAME, FOLDER_NAME, HEADER_LEN, MAX_ID, MAXIMUM_MESSAGE_SIZE, NEW_ID

from .notify import Notifier


def _sync(fd: int) -> None:
    os.fdatasync(fd) if hasattr(os, "fdatasync") else os.fsync(fd)


def _write_at(fd: int, data: bytes, offset: int) -> None:
    """Positioned write; may extend the file sparsely past its current end."""
    view = memoryview(data)
    while view:
        if hasattr(os, "pwrite"):
            n = os.pwrite(fd, view, offset)
        else:
            os.lseek(fd, offset, os.SEEK_SET)
            n = os.write(fd, view)
        view = view[n:]
        offset += n


def _read_at(fd: int, size: int, offset: int) -> bytes:
    chunks: list[bytes] = []
    while size > 0:
        if hasattr(os, "pread"):
            chunk = os.pread(fd, size, offset)
        else:
            os.lseek(fd, offset, os.SEEK_SET)
            chunk = os.read(fd, size)
        if not chunk:
            break
        chunks.append(chunk)
        size -= len(chunk)
        offset += len(chunk)
    return b"".join(chunks)


class Storage:
    """Owner of one chat store file.

    Single process, single writer. Calls are not thread-safe: callers that need
    concurrency must funnel every request through one owning thread or task.
    The file is opened and closed inside each operation; only the header is cached.
    """

    def __init__(
        self,
        root: Path | str = FOLDER_NAME,
        name: str = DB_NAME,
        capacity: int = MAXIMUM_MESSAGE_SIZE,
        notifier: Notifier | None = None,
    ):
        self.root = Path(root)
        self.path = self.root / name
        self.capacity = capacity
        self.notifier = notifier if notifier is not None else Notifier()
        self.header: Header | None = None

    def __enter__(self) -> "Storage":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _notify(self, msg: str) -> None:
        # Fire-and-forget: a full or closed channel never fails the caller.
        self.notifier.send(msg)

    @property
    def record_len(self) -> int:
        return record_len(self.capacity)

    def offset(self, rid: int) -> int:
        return record_offset(rid, self.capacity)

    def check(self) -> None:
        """Probe that the store file can be opened for reading. Does not validate it."""
        try:
            with open(self.path, "rb"):
                pass
        except OSError as e:
            raise NotFoundError(f"Store not readable: {self.path} ({e.strerror})") from e

    def initialize(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"Cannot create folder {self.root}: {e.strerror}") from e

        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            # Reopen path: a header that fails to validate is fatal here.
            self.header = self._load_header()
            self._notify("Database already exists")
            return
        except OSError as e:
            raise StorageIOError(f"Cannot create store {self.path}: {e.strerror}") from e

        self._notify("Creating database...")
        header = Header()
        try:
            _write_at(fd, encode_header(header), 0)
            _sync(fd)
        except OSError as e:
            raise StorageIOError(f"Cannot write header to {self.path}: {e.strerror}") from e
        finally:
            os.close(fd)

        self.header = header
        self._notify("Database created successfully")

    def _load_header(self) -> Header:
        try:
            with open(self.path, "rb") as f:
                buf = f.read(HEADER_LEN)
        except FileNotFoundError as e:
            raise NotFoundError(f"Store not found: {self.path}") from e
        except OSError as e:
            raise StorageIOError(f"Cannot read header from {self.path}: {e.strerror}") from e
        return decode_header(buf)

    def _save_header(self, header: Header) -> None:
        try:
            fd = os.open(self.path, os.O_WRONLY)
        except OSError as e:
            raise StorageIOError(f"Cannot open {self.path}: {e.strerror}") from e
        try:
            _write_at(fd, encode_header(header), 0)
            _sync(fd)
        except OSError as e:
            raise StorageIOError(f"Cannot write header to {self.path}: {e.strerror}") from e
        finally:
            os.close(fd)

    def _require_header(self) -> Header:
        if self.header is None:
            self.header = self._load_header()
        return self.header

    @staticmethod
    def _check_id(rid: int) -> None:
        if not isinstance(rid, int) or isinstance(rid, bool) or not 0 <= rid <= MAX_ID:
            raise ValidationError(f"Identifier {rid!r} outside 0..{MAX_ID}")

    def store(self, rid: int, content: Content) -> int:
        """Write one snapshot. rid == 0 allocates, any other rid overwrites in place.

        Returns the identifier the record was written under.
        """
        self._check_id(rid)
        header = self._require_header()

        allocate = rid == NEW_ID
        if allocate:
            rid = header.next_id()
            if rid > MAX_ID:
                raise ValidationError("Identifier space exhausted")

        # Encode first: oversized content is rejected before the file is touched.
        buf = encode_record(replace(content, id=rid), self.capacity)
        offset = self.offset(rid)

        try:
            fd = os.open(self.path, os.O_WRONLY)
        except OSError as e:
            raise StorageIOError(f"Cannot open {self.path}: {e.strerror}") from e
        try:
            _write_at(fd, buf, offset)
            _sync(fd)
        except OSError as e:
            raise StorageIOError(f"Cannot write record {rid} to {self.path}: {e.strerror}") from e
        finally:
            os.close(fd)

        if allocate:
            updated = replace(header, record=header.record + 1, count=header.count + 1)
            self._save_header(updated)
            self.header = updated

        self._notify(f"Stored message with ID {rid}")
        return rid

    def get(self, rid: int) -> Content:
        self._check_id(rid)
        if rid == NEW_ID:
            raise NotFoundError("Identifier 0 is reserved and never stored")

        offset = self.offset(rid)
        try:
            fd = os.open(self.path, os.O_RDONLY)
        except FileNotFoundError as e:
            raise NotFoundError(f"Store not found: {self.path}") from e
        except OSError as e:
            raise StorageIOError(f"Cannot open {self.path}: {e.strerror}") from e
        try:
            size = os.fstat(fd).st_size
            if offset >= size:
                raise NotFoundError(f"Record {rid} not found (offset {offset} beyond file length {size})")
            data = _read_at(fd, self.record_len, offset)
        except OSError as e:
            raise StorageIOError(f"Cannot read record {rid} from {self.path}: {e.strerror}") from e
        finally:
            os.close(fd)

        if len(data) < self.record_len:
            raise FormatError(f"Torn record {rid}: {len(data)} of {self.record_len} bytes on disk")
        if not any(data):
            raise NotFoundError(f"Record {rid} not found (slot never written)")

        content = decode_record(data, self.capacity)
        if content.id != rid:
            raise FormatError(f"Record drift at slot {rid}: stored id {content.id}")
        return content

    def get_ids(self) -> list[int]:
        """Allocated identifiers, 1..Count."""
        return list(range(1, self._require_header().count + 1))

    def close(self) -> None:
        self.notifier.close()
