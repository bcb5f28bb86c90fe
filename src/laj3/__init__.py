"""laj3 - content-addressed directory synchronization over TCP."""

__version__ = "0.3.0"
