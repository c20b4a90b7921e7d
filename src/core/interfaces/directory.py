"""Abstract interface for external reference lookups."""

from abc import ABC, abstractmethod
from enum import Enum


class ReferenceKind(str, Enum):
    """Kinds of references resolved by collaborator services."""

    ITEM = "item"
    LOT = "lot"
    SERIAL = "serial"
    LOCATION = "location"
    WAREHOUSE = "warehouse"
    USER = "user"


class IReferenceDirectory(ABC):
    """Read-only resolution of item, lot, serial, location, warehouse and user IDs."""

    @abstractmethod
    async def exists(self, kind: ReferenceKind, ref_id: str) -> bool:
        """Return True if the reference is known to its owning service.

        Raises DirectoryUnavailableError when the service cannot answer.
        """
        pass
