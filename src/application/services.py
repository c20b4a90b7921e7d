"""
Service factory functions for dependency injection.

This module wires infrastructure implementations to the gateway and query
service. API dependencies import from here.

Clean Architecture: Application layer orchestrates DI, not core layer.
"""

from typing import TYPE_CHECKING

from src.application.gateway import ValidationGateway
from src.application.queries import MovementQueryService
from src.core.services import ReconciliationEngine

if TYPE_CHECKING:
    from src.core.interfaces import IClock, IMovementStore, IReferenceDirectory


# Singleton service instances
_gateway: ValidationGateway | None = None
_query_service: MovementQueryService | None = None
_reconciler: ReconciliationEngine | None = None


def get_reconciliation_engine() -> ReconciliationEngine:
    """Shared engine stack (state machine, line engine, task scheduler)."""
    global _reconciler
    if _reconciler is None:
        _reconciler = ReconciliationEngine()
    return _reconciler


async def get_validation_gateway(
    store: "IMovementStore | None" = None,
    directory: "IReferenceDirectory | None" = None,
    clock: "IClock | None" = None,
) -> ValidationGateway:
    """
    Get or create the ValidationGateway.

    Creates infrastructure dependencies if not provided. Passing any override
    builds a fresh, uncached instance.
    """
    global _gateway

    overridden = store is not None or directory is not None or clock is not None
    if _gateway is not None and not overridden:
        return _gateway

    # Lazy import infrastructure to avoid circular imports
    from src.infrastructure.directory import get_reference_directory
    from src.infrastructure.storage.sqlite import get_movement_store

    gateway = ValidationGateway(
        store=store or get_movement_store(),
        directory=directory or get_reference_directory(),
        clock=clock,
        reconciler=get_reconciliation_engine(),
    )
    if not overridden:
        _gateway = gateway
    return gateway


async def get_query_service(
    store: "IMovementStore | None" = None,
    clock: "IClock | None" = None,
) -> MovementQueryService:
    """Get or create the MovementQueryService."""
    global _query_service

    overridden = store is not None or clock is not None
    if _query_service is not None and not overridden:
        return _query_service

    from src.infrastructure.storage.sqlite import get_movement_store

    service = MovementQueryService(
        store=store or get_movement_store(),
        clock=clock,
        reconciler=get_reconciliation_engine(),
    )
    if not overridden:
        _query_service = service
    return service


def reset_services() -> None:
    """Reset all singleton instances (for testing)."""
    global _gateway
    global _query_service
    global _reconciler

    _gateway = None
    _query_service = None
    _reconciler = None


__all__ = [
    "get_validation_gateway",
    "get_query_service",
    "get_reconciliation_engine",
    "reset_services",
]
