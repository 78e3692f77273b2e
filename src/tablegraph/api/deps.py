"""
FastAPI dependency injection functions.

Provides reusable dependencies for authentication, database sessions and
services.
"""

from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from tablegraph.core.config import settings
from tablegraph.core.exceptions import AuthenticationError, InvalidTokenError
from tablegraph.core.security import decode_token
from tablegraph.db.session import get_db
from tablegraph.services.access import AccessGate
from tablegraph.services.bulk import BulkMutationOrchestrator
from tablegraph.services.field import FieldService
from tablegraph.services.recompute import RecomputeDispatcher
from tablegraph.services.relation import RelationService
from tablegraph.services.row import RowService
from tablegraph.services.table import TableService

# HTTP Bearer token security scheme
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> str:
    """
    Get the id of the authenticated user from the bearer token.

    Raises:
        AuthenticationError: If no token was sent
        InvalidTokenError: If the token is malformed, forged or expired
    """
    if credentials is None:
        raise AuthenticationError("Unauthorized")

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise InvalidTokenError()
    return payload.sub


def get_relation_service() -> RelationService:
    return RelationService(AccessGate())


def get_table_service() -> TableService:
    return TableService()


def get_field_service() -> FieldService:
    return FieldService()


def get_bulk_orchestrator() -> BulkMutationOrchestrator:
    return BulkMutationOrchestrator(settings)


def get_row_service() -> RowService:
    gate = AccessGate()
    relations = RelationService(gate)
    dispatcher = RecomputeDispatcher(settings=settings, relations=relations)
    return RowService(settings=settings, gate=gate, relations=relations, dispatcher=dispatcher)


# Type aliases for common dependencies
CurrentUserId = Annotated[str, Depends(get_current_user_id)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
TableServiceDep = Annotated[TableService, Depends(get_table_service)]
FieldServiceDep = Annotated[FieldService, Depends(get_field_service)]
RowServiceDep = Annotated[RowService, Depends(get_row_service)]
RelationServiceDep = Annotated[RelationService, Depends(get_relation_service)]
BulkOrchestratorDep = Annotated[BulkMutationOrchestrator, Depends(get_bulk_orchestrator)]
