"""End-to-end tests for the sync server and client over real sockets."""

import sys
import os
import io
import json
import socket
import threading
import zipfile
from contextlib import contextmanager

import pytest

# Add src to path for testing
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from laj3.client.client import install, receive_all
from laj3.manifest.builder import build_manifest
from laj3.manifest.store import save_manifest
from laj3.server.server import SyncServer


@contextmanager
def running_server(root, manifest_path, **kwargs):
    server = SyncServer(("127.0.0.1", 0), root=str(root), manifest_path=str(manifest_path), **kwargs)
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()
        t.join(5)


def raw_exchange(server, payload, timeout=5):
    """Send raw bytes, half-close, and return everything the server sent back."""
    with socket.create_connection(server.server_address[:2], timeout=timeout) as sock:
        if payload:
            sock.sendall(payload)
        sock.shutdown(socket.SHUT_WR)
        return receive_all(sock)


@pytest.fixture
def storage(tmp_path):
    root = tmp_path / "storage"
    root.mkdir()
    (root / "a.txt").write_bytes(b"server a")
    (root / "b.txt").write_bytes(b"server b")
    manifest_path = tmp_path / "base.dict"
    save_manifest({"a.txt": "h2", "b.txt": "h3"}, manifest_path)
    return root, manifest_path


def test_install_receives_differing_files(storage, tmp_path):
    """Client {a: h1} vs server {a: h2, b: h3} yields a zip with a and b."""
    root, manifest_path = storage
    client_manifest = tmp_path / "client.dict"
    client_manifest.write_text(json.dumps({"a.txt": "h1"}), encoding="utf-8")
    output = tmp_path / "out" / "output.zip"

    with running_server(root, manifest_path) as server:
        port = server.server_address[1]
        received = install(f"127.0.0.1:{port}/pkg", manifest_path=str(client_manifest), output=str(output))

    assert received == output.stat().st_size
    with zipfile.ZipFile(output) as zf:
        assert sorted(zf.namelist()) == ["a.txt", "b.txt"]
        assert zf.read("a.txt") == b"server a"
        assert zf.read("b.txt") == b"server b"


def test_up_to_date_client_gets_empty_archive(storage):
    root, manifest_path = storage
    body = json.dumps({"a.txt": "h2", "b.txt": "h3"}).encode() + b"\r\n\r\n"

    with running_server(root, manifest_path) as server:
        data = raw_exchange(server, body)

    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        assert zf.namelist() == []


def test_manifest_ends_at_blank_line(storage):
    """A bare newline blank line also ends a multi-line manifest."""
    root, manifest_path = storage
    body = b'{\n"a.txt": "h2"\n}\n\n'

    with running_server(root, manifest_path) as server:
        data = raw_exchange(server, body)

    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        assert zf.namelist() == ["b.txt"]


def test_install_with_root_builds_manifest(tmp_path, monkeypatch):
    server_root = tmp_path / "server"
    server_root.mkdir()
    (server_root / "same.txt").write_bytes(b"same")
    (server_root / "new.txt").write_bytes(b"new")
    manifest_path = tmp_path / "base.dict"
    save_manifest(build_manifest(server_root, base=server_root), manifest_path)

    client_root = tmp_path / "client"
    client_root.mkdir()
    (client_root / "same.txt").write_bytes(b"same")
    # run from the parent so keys must be made relative to the client root
    monkeypatch.chdir(tmp_path)
    output = tmp_path / "output.zip"

    with running_server(server_root, manifest_path) as server:
        port = server.server_address[1]
        install(f"127.0.0.1:{port}/", root=str(client_root), output=str(output))

    with zipfile.ZipFile(output) as zf:
        assert zf.namelist() == ["new.txt"]
        assert zf.read("new.txt") == b"new"


def test_malformed_manifest_drops_connection(storage, caplog):
    root, manifest_path = storage

    with running_server(root, manifest_path) as server:
        assert raw_exchange(server, b"this is not json\r\n\r\n") == b""
        assert raw_exchange(server, b"") == b""

    assert "AwaitManifest" in caplog.text


def test_missing_server_manifest_drops_connection(storage, tmp_path):
    root, _ = storage

    with running_server(root, tmp_path / "does-not-exist.dict") as server:
        assert raw_exchange(server, b'{"a.txt": "h1"}\r\n\r\n') == b""


def test_stalled_client_times_out(storage):
    """A client that never sends its manifest is dropped after the timeout."""
    root, manifest_path = storage

    with running_server(root, manifest_path, pool_size=1, timeout=0.2) as server:
        with socket.create_connection(server.server_address[:2], timeout=5) as sock:
            assert receive_all(sock) == b""

        # the single worker is free again
        data = raw_exchange(server, b'{}\r\n\r\n')

    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        assert sorted(zf.namelist()) == ["a.txt", "b.txt"]


def test_concurrent_clients(storage):
    """More clients than workers are all served."""
    root, manifest_path = storage
    results = []
    lock = threading.Lock()

    with running_server(root, manifest_path, pool_size=2) as server:
        def client(i):
            body = json.dumps({"a.txt": "h2"} if i % 2 else {}).encode() + b"\r\n\r\n"
            data = raw_exchange(server, body)
            with zipfile.ZipFile(io.BytesIO(data)) as zf:
                names = sorted(zf.namelist())
            with lock:
                results.append((i, names))

        threads = [threading.Thread(target=client, args=(i,)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(10)

    assert len(results) == 10
    for i, names in results:
        assert names == (["b.txt"] if i % 2 else ["a.txt", "b.txt"])
