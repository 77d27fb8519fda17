from __future__ import annotations

import errno
import os
import struct
from pathlib import Path
from warnings import warn

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from chat_core.codec import Content, decode_header, decode_record, record_len, record_offset
from chat_core.errors import FormatError
from chat_core.ids import content_hash, record_key
from chat_core.protocol import HEADER_LEN, MAXIMUM_MESSAGE_SIZE, REC_HEADER_FMT, REC_HEADER_LEN

# Read size used when stepping over zero runs between records
SCAN_CHUNK_BYTES = 1024 * 1024


class StrictJudge:
    """Disk is truth.

    - The header is validated on open; a bad header is fatal.
    - Allocated slots 1..Count are verified by strict offset math and id cross-checks.
    - Slots past Count that still hold data are reported as untracked.
    """

    def __init__(self, db_path: Path, capacity: int = MAXIMUM_MESSAGE_SIZE):
        self.db_path = Path(db_path)
        self.capacity = capacity
        self.record_len = record_len(capacity)
        self.index: dict[int, dict] = {}
        self.scan_stats = {
            "records": 0,
            "empty": 0,
            "corrupt": 0,
            "untracked": 0,
        }

        self._open_header()
        self._scan_records()

    def _open_header(self) -> None:
        self.f = open(self.db_path, "rb")
        raw = self.f.read(HEADER_LEN)
        self.f.seek(0, 2)
        self.file_len = self.f.tell()
        try:
            self.header = decode_header(raw)
        except FormatError as e:
            self.f.close()
            raise FormatError(f"FATAL: Invalid chat file header ({e})") from e

    def close(self) -> None:
        self.f.close()

    def __enter__(self) -> "StrictJudge":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def get_scan_stats(self) -> dict:
        return dict(self.scan_stats)

    def verify_record(self, rid: int) -> tuple[str, Content | None]:
        offset = record_offset(rid, self.capacity)
        if offset >= self.file_len:
            return "EOF", None

        self.f.seek(offset)
        data = self.f.read(self.record_len)

        if len(data) < self.record_len:
            return "TORN_WRITE", None
        if not any(data):
            return "EMPTY", None

        fid, _, _, dlen = struct.unpack(REC_HEADER_FMT, data[:REC_HEADER_LEN])
        if int(dlen) > self.capacity:
            return f"BAD_LENGTH (Found {int(dlen)}, Max {self.capacity})", None
        if int(fid) != rid:
            return f"DRIFT (Found {int(fid)}, Exp {rid})", None

        return "VERIFIED", decode_record(data, self.capacity)

    def _index(self, rid: int, stat: str, content: Content | None) -> None:
        self.index[rid] = {
            "offset": record_offset(rid, self.capacity),
            "status": stat,
            "content": content,
            "content_hash": content_hash(content.content) if content is not None else None,
        }

    def _scan_records(self) -> None:
        count = self.header.count
        for rid in range(1, count + 1):
            stat, content = self.verify_record(rid)
            self._index(rid, stat, content)

            if stat == "VERIFIED":
                self.scan_stats["records"] += 1
            elif stat in ("EMPTY", "EOF"):
                # Allocated but the write never landed.
                self.scan_stats["empty"] += 1
                warn(f"Allocated record {rid} holds no data ({stat})")
            else:
                self.scan_stats["corrupt"] += 1
                warn(f"Corrupt record {rid}: {stat}")

        # Count is a request counter; reconcile it against what is really on disk.
        rid = self._next_data_slot(record_offset(count + 1, self.capacity))
        while rid is not None:
            stat, content = self.verify_record(rid)
            next_off = record_offset(rid + 1, self.capacity)
            if stat == "EMPTY":
                rid = self._next_data_slot(next_off)
                continue
            if stat == "VERIFIED":
                stat = "UNTRACKED"
            self._index(rid, stat, content)
            self.scan_stats["untracked"] += 1
            warn(f"Data at record {rid} beyond allocated count {count}: {stat}")
            rid = self._next_data_slot(next_off)

    def _seek_data(self, pos: int) -> int | None:
        """Skip sparse holes where the OS can report them. None means no data at or after pos."""
        if not hasattr(os, "SEEK_DATA"):
            return pos
        try:
            return os.lseek(self.f.fileno(), pos, os.SEEK_DATA)
        except OSError as e:
            if e.errno == errno.ENXIO:
                return None
            # Filesystem without hole reporting: fall back to reading.
            return pos

    def _next_data_slot(self, pos: int) -> int | None:
        """Slot holding the first nonzero byte at or after pos (None at EOF).

        Zero runs are skipped a chunk at a time instead of slot by slot.
        """
        while pos < self.file_len:
            pos = self._seek_data(pos)
            if pos is None or pos >= self.file_len:
                return None
            self.f.seek(pos)
            chunk = self.f.read(SCAN_CHUNK_BYTES)
            if not chunk:
                return None
            rest = chunk.lstrip(b"\x00")
            if not rest:
                pos += len(chunk)
                continue
            hit = pos + len(chunk) - len(rest)
            return (hit - HEADER_LEN) // self.record_len
        return None

    @property
    def high_water(self) -> int:
        """Highest identifier holding a decodable record (0 when none)."""
        held = [rid for rid, rec in self.index.items() if rec["content"] is not None]
        return max(held, default=0)


def export_records(db_path: Path, out_path: Path, capacity: int = MAXIMUM_MESSAGE_SIZE) -> Path | None:
    """Build records.parquet from every indexed slot of a chat store."""
    rows: list[dict] = []
    with StrictJudge(db_path, capacity) as judge:
        for rid in sorted(judge.index):
            rec = judge.index[rid]
            content = rec["content"]
            rows.append(
                {
                    "id": rid,
                    "record_key": record_key(rid, content.created_at) if content is not None else None,
                    "created_at": content.created_at if content is not None else None,
                    "updated_at": content.updated_at if content is not None else None,
                    "length": content.length if content is not None else None,
                    "content": content.content.decode("utf-8", errors="replace") if content is not None else None,
                    "content_hash": rec["content_hash"],
                    "status": rec["status"],
                }
            )

    Path(out_path).mkdir(parents=True, exist_ok=True)

    df = pd.DataFrame(rows)
    if df.empty:
        return None

    # Damaged slots carry no timestamps; keep those columns integer with nulls.
    df = df.astype({"created_at": "Int64", "updated_at": "Int64", "length": "Int32"})

    schema = pa.schema(
        [
            ("id", pa.int64()),
            ("record_key", pa.string()),
            ("created_at", pa.int64()),
            ("updated_at", pa.int64()),
            ("length", pa.int32()),
            ("content", pa.string()),
            ("content_hash", pa.string()),
            ("status", pa.string()),
        ]
    )

    target = Path(out_path) / "records.parquet"
    table = pa.Table.from_pandas(df, schema=schema, preserve_index=False)
    pq.write_table(table, target)
    return target
