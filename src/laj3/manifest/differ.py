def diff_manifests(client, server):
    """
    Return the paths the server must send to the client.

    First every client path that is missing on the server or carries a
    different fingerprint, then every server path the client lacks.
    Paths the client has but the server does not are included too; the
    archiver skips the ones it cannot find.
    """
    diffs = []

    for path, digest in client.items():
        if path not in server or server[path] != digest:
            diffs.append(path)

    for path in server:
        if path not in client:
            diffs.append(path)

    return diffs
