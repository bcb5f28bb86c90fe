"""
Manifest persistence.

A manifest is a flat JSON object mapping relative paths to hex digests.
On disk it is stored as-is; on the wire it is followed by a blank line
(see laj3.client.client and laj3.server.server).
"""

import json

from laj3.errors import ManifestError


def parse_manifest(text):
    """
    Parse manifest text into a dict.

    Raises ManifestError when the text is not a JSON object of
    string -> string. A partially valid manifest is never returned.
    """
    try:
        data = json.loads(text)
    except ValueError as e:
        raise ManifestError(f"Manifest is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ManifestError(f"Manifest must be a JSON object, got {type(data).__name__}")

    for path, digest in data.items():
        if not isinstance(digest, str):
            raise ManifestError(f"Fingerprint for {path!r} is not a string: {digest!r}")

    return data


def dump_manifest(manifest):
    return json.dumps(manifest, ensure_ascii=False, sort_keys=True)


def load_manifest(path):
    """Read and parse a manifest file. OSError propagates."""
    with open(path, "r", encoding="utf-8") as f:
        return parse_manifest(f.read())


def save_manifest(manifest, path):
    with open(path, "w", encoding="utf-8") as f:
        f.write(dump_manifest(manifest))
