"""
Packaging of selected files into a single in-memory zip archive.

Entries are deflate-compressed and named by the relative path they were
requested under, so the client can extract the archive on top of its
own tree.
"""

import io
import os
import logging
import zipfile

from laj3.errors import ArchiveError

log = logging.getLogger("Archiver")


def resolve_path(root, path):
    """
    Map a manifest path onto a file under `root`.

    Returns None for absolute paths and paths that escape `root`.
    """
    if os.path.isabs(path) or path.startswith(("/", "\\")):
        return None
    root = os.path.abspath(root)
    fp = os.path.normpath(os.path.join(root, path))
    if fp != root and not fp.startswith(root + os.sep):
        return None
    return fp


def build_archive(paths, root="."):
    """
    Zip the given paths and return (blob, archived_paths).

    Files that cannot be located or read are skipped with a warning.
    Raises ArchiveError if the container itself cannot be written.
    """
    paths = list(paths)
    buf = io.BytesIO()
    archived = []

    try:
        with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for path in paths:
                fp = resolve_path(root, path)
                if fp is None:
                    log.warning(f"Refusing to archive {path}: outside of {root}")
                    continue
                if not os.path.isfile(fp):
                    log.warning(f"Error while opening file {path}: not a regular file")
                    continue

                try:
                    with open(fp, "rb") as f:
                        data = f.read()
                except OSError as e:
                    log.warning(f"Error while reading file {path}: {e}")
                    continue

                zf.writestr(path, data)
                archived.append(path)
    except (OSError, ValueError, zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        raise ArchiveError(f"Error while zipping files: {e}") from e

    blob = buf.getvalue()
    log.info(f"Archived {len(archived)}/{len(paths)} files ({len(blob)} bytes)")
    return blob, archived


def archive_files(paths, root="."):
    """Return the zip archive bytes for `paths`, see build_archive."""
    blob, _ = build_archive(paths, root)
    return blob
