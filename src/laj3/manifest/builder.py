import os
import logging

from laj3.manifest.hasher import sha256_of_file

log = logging.getLogger("Manifest")


def relative_key(path, base):
    """
    Turn a filesystem path into a manifest key.

    Keys are relative to `base` and always use forward slashes. A path
    that lies outside `base` keeps its given form, minus leading
    separators.
    """
    rel = os.fspath(path)
    try:
        candidate = os.path.relpath(os.path.abspath(path), base)
        if candidate != os.pardir and not candidate.startswith(os.pardir + os.sep):
            rel = candidate
    except ValueError:
        # different drive on Windows
        pass

    rel = rel.replace(os.sep, "/").replace("\\", "/")
    while rel.startswith("./"):
        rel = rel[2:]
    return rel.lstrip("/")


def build_manifest(root, recursive=False, base=None):
    """
    Scan `root` and return a {relative path: sha256} manifest.

    A file root yields exactly one entry. A directory root always has its
    immediate files hashed; subdirectories are only walked when
    `recursive` is set. Files and subdirectories that cannot be read are
    logged and skipped. Only an unreadable root raises (OSError).
    """
    base = os.path.abspath(base or os.getcwd())
    manifest = {}

    if not os.path.isdir(root):
        # single file, errors here are fatal
        manifest[relative_key(root, base)] = sha256_of_file(root)
        return manifest

    # the root listing itself must succeed
    with os.scandir(root) as it:
        entries = sorted(it, key=lambda e: e.name)

    visited = {os.path.realpath(root)}
    pending = []

    while True:
        for entry in entries:
            try:
                is_dir = entry.is_dir()
                is_file = entry.is_file()
            except OSError as e:
                log.warning(f"Error while reading {entry.path}: {e}")
                continue

            if is_dir:
                if not recursive:
                    continue
                real = os.path.realpath(entry.path)
                if real in visited:
                    log.debug(f"Skipping already visited directory {entry.path}")
                    continue
                visited.add(real)
                pending.append(entry.path)
                continue

            if not is_file:
                # sockets, fifos, dangling symlinks
                log.warning(f"Skipping {entry.path}: not a regular file")
                continue

            try:
                digest = sha256_of_file(entry.path)
            except OSError as e:
                log.warning(f"Error while adding {entry.path} to the manifest: {e}")
                continue
            manifest[relative_key(entry.path, base)] = digest

        if not pending:
            break

        directory = pending.pop()
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            log.warning(f"Error while reading {directory}: {e}")
            entries = []

    log.info(f"Built manifest for {root} ({len(manifest)} files)")
    return manifest
