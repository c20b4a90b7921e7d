"""Reference directory clients."""

from src.infrastructure.directory.http_directory import HttpReferenceDirectory

_directory: HttpReferenceDirectory | None = None


def get_reference_directory() -> HttpReferenceDirectory:
    """Get singleton reference directory."""
    global _directory
    if _directory is None:
        _directory = HttpReferenceDirectory()
    return _directory


__all__ = ["HttpReferenceDirectory", "get_reference_directory"]
