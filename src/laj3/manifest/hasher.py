import hashlib

CHUNK_SIZE = 1024 * 1024


def sha256_of_bytes(data):
    """Return the hex SHA256 digest of a byte string."""
    return hashlib.sha256(data).hexdigest()


def sha256_of_file(path):
    """Return SHA256 hash of a file.

    The file is streamed in 1 MiB chunks. Errors opening or reading it
    propagate to the caller as OSError.
    """
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()
