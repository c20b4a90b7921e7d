"""
Application layer - DTOs, the validation gateway, queries and service factories.

This layer orchestrates business logic by:
1. Defining request/response DTOs for API contracts
2. Validating commands and applying them through the core engines
3. Providing factory functions for dependency injection

The gateway is the only entry point for mutating API handlers.
"""

from src.application.context import SYSTEM_CONTEXT, RequestContext
from src.application.gateway import AutoAssignResult, ValidationGateway
from src.application.queries import MovementQueryService, MovementStatistics, Page
from src.application.services import (
    get_query_service,
    get_reconciliation_engine,
    get_validation_gateway,
    reset_services,
)

__all__ = [
    # Context
    "RequestContext",
    "SYSTEM_CONTEXT",
    # Commands
    "ValidationGateway",
    "AutoAssignResult",
    # Queries
    "MovementQueryService",
    "MovementStatistics",
    "Page",
    # Service factories
    "get_validation_gateway",
    "get_query_service",
    "get_reconciliation_engine",
    "reset_services",
]
