from .reader import DatabaseReader
from .slot import DatabaseHandle, ResourceSlot

__all__ = ["DatabaseReader", "DatabaseHandle", "ResourceSlot"]
