import os
import socket
import logging

from laj3.config.settings import CONNECTION_TIMEOUT, OUTPUT_FILE
from laj3.errors import InvalidURIError, ManifestError, ManifestRequiredError
from laj3.manifest.builder import build_manifest
from laj3.manifest.store import dump_manifest

log = logging.getLogger("SyncClient")

# Blank line telling the server the manifest is complete
SENTINEL = b"\r\n\r\n"
RECV_SIZE = 64 * 1024


# === Helper Functions ===
def split_uri(uri):
    """Split `host:port/resource` into (host, port, resource)."""
    address, sep, resource = uri.partition("/")
    if not sep:
        raise InvalidURIError(f"Invalid request URI {uri!r}: expected host:port/resource")

    host, sep, port = address.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise InvalidURIError(f"Invalid address {address!r} in URI {uri!r}: expected host:port")
    return host, int(port), resource


def read_manifest_body(manifest_path=None, root=None, recursive=True):
    """
    Return the manifest bytes to upload.

    A manifest file is sent verbatim. Without one, a manifest is built
    from `root`, keyed relative to `root` itself. With neither there is
    nothing to ask the server for. Local read failures raise ManifestError.
    """
    if manifest_path:
        try:
            with open(manifest_path, "rb") as f:
                body = f.read()
        except OSError as e:
            raise ManifestError(f"Error while reading manifest file {manifest_path}: {e}") from e
        return body.rstrip(b"\r\n")

    if root:
        try:
            manifest = build_manifest(root, recursive=recursive, base=root)
        except OSError as e:
            raise ManifestError(f"Error while reading {root}: {e}") from e
        return dump_manifest(manifest).encode("utf-8")

    raise ManifestRequiredError("A manifest file or a root directory is required to install")


def receive_all(sock):
    chunks = []
    for chunk in iter(lambda: sock.recv(RECV_SIZE), b""):
        chunks.append(chunk)
    return b"".join(chunks)


def install(uri, manifest_path=None, root=None, output=OUTPUT_FILE,
            recursive=True, timeout=CONNECTION_TIMEOUT):
    """
    Ask the server at `uri` for the files missing from our manifest.

    The response archive is written to `output`. Returns the number of
    bytes received.
    """
    host, port, resource = split_uri(uri)
    body = read_manifest_body(manifest_path, root, recursive)

    with socket.create_connection((host, port), timeout=timeout) as sock:
        peer = sock.getpeername()
        log.info(f"Connected to remote host {peer[0]}:{peer[1]}")
        if resource:
            log.debug(f"Requested resource: {resource}")

        sock.sendall(body + SENTINEL)
        sock.shutdown(socket.SHUT_WR)
        data = receive_all(sock)

    if not data:
        log.warning("Server closed the connection without sending an archive")
        return 0

    parent = os.path.dirname(output)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(output, "wb") as f:
        f.write(data)

    log.info(f"⬇ Received {len(data)} bytes into {output}")
    return len(data)
