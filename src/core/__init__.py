"""Core domain layer - entities, interfaces, and exceptions."""

from src.core import entities, exceptions, interfaces

__all__ = ["entities", "interfaces", "exceptions"]
