import sys
from pathlib import Path

# Header is 16 bytes; record 1 starts at 16 + 1 * (22 + 4096).
HEADER_LEN = 16
RECORD_LEN = 22 + 4096


def main():
    if len(sys.argv) not in (2, 3):
        print("Usage: corrupt_one_byte.py <chat.db> [record_id]")
        raise SystemExit(2)

    p = Path(sys.argv[1])
    rid = int(sys.argv[2]) if len(sys.argv) == 3 else 1
    b = bytearray(p.read_bytes())

    # Flip the low byte of the stored Id field to induce drift.
    idx = HEADER_LEN + rid * RECORD_LEN + 3
    if len(b) <= idx:
        print("File too small to corrupt safely.")
        raise SystemExit(2)

    b[idx] ^= 0x01
    p.write_bytes(bytes(b))
    print(f"Corrupted 1 byte at offset {idx} in {p}")

if __name__ == "__main__":
    main()
