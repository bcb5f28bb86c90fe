import time
import logging
import socketserver

from prometheus_client import start_http_server, Counter, Histogram

from laj3.archive.archiver import build_archive
from laj3.config.settings import (
    CONNECTION_TIMEOUT, METRICS_PORT, POOL_SIZE, SERVER_HOST, SERVER_MANIFEST, STORAGE_DIR
)
from laj3.errors import ArchiveError, ManifestError
from laj3.manifest.differ import diff_manifests
from laj3.manifest.store import load_manifest, parse_manifest
from laj3.server.pool import WorkerPool

"""
Sync server.

Each accepted TCP connection is one job on the worker pool. A job reads
the client's manifest (JSON terminated by a blank line), diffs it with the
server manifest, zips the differing files and writes the archive back as
the whole response. The connection is closed once the job returns.
"""

# === Prometheus metrics ===
CONNECTIONS = Counter("laj3_connections_total", "Accepted client connections")
DROPPED = Counter("laj3_dropped_connections_total", "Connections closed without a response", ["reason"])
FILES_SENT = Counter("laj3_files_sent_total", "Files written into response archives")
LATENCY = Histogram("laj3_request_duration_seconds", "Time to serve one connection (s)")

log = logging.getLogger("SyncServer")

# === Connection states ===
AWAIT_MANIFEST = "AwaitManifest"
DIFFING = "Diffing"
ARCHIVING = "Archiving"
SENDING = "Sending"
CLOSED = "Closed"


class SyncHandler(socketserver.StreamRequestHandler):
    """
    Runs one connection through AwaitManifest -> Diffing -> Archiving ->
    Sending -> Closed.

    Any failure moves straight to Closed without writing a response.
    """

    def setup(self):
        self.timeout = self.server.connection_timeout
        self.state = AWAIT_MANIFEST
        super().setup()

    def _drop(self, reason, message, level=logging.WARNING):
        DROPPED.labels(reason).inc()
        log.log(level, f"Dropping {self.client_address[0]}:{self.client_address[1]} in {self.state}: {message}")
        self.state = CLOSED

    def read_manifest(self):
        """Read lines up to the first blank line (or EOF) and parse them."""
        lines = []
        for raw in self.rfile:
            line = raw.rstrip(b"\r\n")
            if not line:
                break
            lines.append(line)

        try:
            text = b"\n".join(lines).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ManifestError(f"Manifest is not valid UTF-8: {e}") from e
        return parse_manifest(text)

    def handle(self):
        start = time.time()

        try:
            client_manifest = self.read_manifest()
        except ManifestError as e:
            return self._drop("bad_manifest", e)
        except OSError as e:
            return self._drop("transport", f"Error while reading client manifest: {e}")

        self.state = DIFFING
        try:
            server_manifest = load_manifest(self.server.manifest_path)
        except (OSError, ManifestError) as e:
            return self._drop("server_manifest", f"Error while reading server manifest: {e}", logging.ERROR)
        diffs = diff_manifests(client_manifest, server_manifest)

        self.state = ARCHIVING
        try:
            blob, archived = build_archive(diffs, self.server.root)
        except ArchiveError as e:
            return self._drop("archive", e, logging.ERROR)

        self.state = SENDING
        try:
            self.wfile.write(blob)
        except OSError as e:
            return self._drop("transport", f"Error while sending archive: {e}")

        self.state = CLOSED
        FILES_SENT.inc(len(archived))
        LATENCY.observe(time.time() - start)
        log.info(f"⬇ Sent {len(archived)} files ({len(blob)} bytes) to {self.client_address[0]}")


class SyncServer(socketserver.TCPServer):
    """
    TCP server dispatching every accepted connection to a WorkerPool.

    `root` is the directory archived paths are resolved against and
    `manifest_path` the pre-computed server manifest, re-read per request.
    """

    allow_reuse_address = True

    def __init__(self, address, root=STORAGE_DIR, manifest_path=SERVER_MANIFEST,
                 pool_size=POOL_SIZE, timeout=CONNECTION_TIMEOUT, handler=SyncHandler):
        self.root = root
        self.manifest_path = manifest_path
        self.connection_timeout = timeout
        self.pool = WorkerPool(pool_size, name="sync-worker")
        try:
            super().__init__(address, handler)
        except OSError:
            self.pool.shutdown()
            raise

    def process_request(self, request, client_address):
        CONNECTIONS.inc()
        log.debug(f"Connection established with {client_address[0]}:{client_address[1]}")
        self.pool.execute(lambda: self._process(request, client_address))

    def _process(self, request, client_address):
        try:
            self.finish_request(request, client_address)
        except Exception:
            self.handle_error(request, client_address)
        finally:
            self.shutdown_request(request)

    def handle_error(self, request, client_address):
        log.exception(f"Unhandled error while serving {client_address[0]}:{client_address[1]}")

    def server_close(self):
        """Close the listener, then drain and join the worker pool."""
        super().server_close()
        self.pool.shutdown()


def serve(port, host=SERVER_HOST, root=STORAGE_DIR, manifest_path=SERVER_MANIFEST,
          pool_size=POOL_SIZE, timeout=CONNECTION_TIMEOUT, metrics_port=METRICS_PORT):
    """Run the blocking accept loop until interrupted."""
    server = SyncServer((host, port), root=root, manifest_path=manifest_path,
                        pool_size=pool_size, timeout=timeout)

    try:
        if metrics_port:
            start_http_server(metrics_port)
            log.info(f"📊 Prometheus metrics running at :{metrics_port}/metrics")

        bound_host, bound_port = server.server_address[:2]
        log.info(f"🚀 Sync Server started on {bound_host}:{bound_port} ({pool_size} workers)")
        log.info(f"Serving {root} using manifest {manifest_path}")

        server.serve_forever()
    except KeyboardInterrupt:
        log.info("🛑 Server stopped manually.")
    finally:
        server.server_close()
