import hashlib

BLOCK_SIZE = 65536
DIGEST_LENGTH = 64  # hex chars of a SHA-256 digest

_HEX_CHARS = set("0123456789abcdef")


def file_digest(path):
    """SHA-256 hex digest of a file, read in fixed-size blocks.

    Raises OSError if the file can't be opened or read.
    """
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(BLOCK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def is_digest(value):
    """True if value has the shape of a file_digest() result."""
    return len(value) == DIGEST_LENGTH and set(value) <= _HEX_CHARS
