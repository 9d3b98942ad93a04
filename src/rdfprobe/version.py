"""Version information for :mod:`rdfprobe`."""

__all__ = [
    "VERSION",
    "get_version",
]

VERSION = "0.1.0"


def get_version() -> str:
    """Get the :mod:`rdfprobe` version string."""
    return VERSION
