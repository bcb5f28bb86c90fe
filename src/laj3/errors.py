"""Exceptions raised across the sync pipeline."""


class Laj3Error(Exception):
    """Base class for all laj3 errors."""


class ManifestError(Laj3Error):
    """A manifest could not be parsed or has the wrong shape."""


class ArchiveError(Laj3Error):
    """The archive container could not be finalized."""


class InvalidURIError(Laj3Error):
    """An install URI could not be split into host and resource."""


class ManifestRequiredError(Laj3Error):
    """Install was called without a manifest file or a root to scan."""
