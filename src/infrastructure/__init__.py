"""Infrastructure layer implementations."""

from src.infrastructure import directory, storage

__all__ = ["storage", "directory"]
