"""Chat store protocol constants.

Single source of truth for the on-disk magic value and record layouts.
Keep this file stable. Storage engine, judge and verifier must remain synchronized.
"""

# File magic
MAGIC_CHAT_FILE = b"CHAT"

VERSION = 1

# Header: [Magic(4) | Version(4) | Record(4) | Count(4)] = 16 bytes, big-endian
HEADER_FMT = ">4sIII"
HEADER_LEN = 16

# Record header: [Id(4) | CreatedAt(8) | UpdatedAt(8) | Length(2)] = 22 bytes, big-endian
REC_HEADER_FMT = ">IqqH"
REC_HEADER_LEN = 22

# Payload window
MAXIMUM_MESSAGE_SIZE = 4096
RECORD_LEN = REC_HEADER_LEN + MAXIMUM_MESSAGE_SIZE

# Identifier 0 is the "allocate next" sentinel and is never stored.
NEW_ID = 0
MAX_ID = 0xFFFFFFFF

# Default location: <FOLDER_NAME>/<DB_NAME>
FOLDER_NAME = "chat"
DB_NAME = "chat.db"

# Pending notifications kept before the oldest is dropped
DEFAULT_NOTIFY_BACKLOG = 10
