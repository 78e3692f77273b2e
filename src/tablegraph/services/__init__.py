"""Business logic services."""

from tablegraph.services.access import AccessGate, TableAccessContext
from tablegraph.services.bulk import (
    BulkMutationOrchestrator,
    BulkOperationStrategy,
    LocalStrategy,
    RemoteProcedureStrategy,
    select_strategy,
)
from tablegraph.services.field import FieldService
from tablegraph.services.recompute import RecomputeDispatcher
from tablegraph.services.relation import RelationService
from tablegraph.services.row import RowService
from tablegraph.services.table import TableService

__all__ = [
    "AccessGate",
    "BulkMutationOrchestrator",
    "BulkOperationStrategy",
    "FieldService",
    "LocalStrategy",
    "RecomputeDispatcher",
    "RelationService",
    "RemoteProcedureStrategy",
    "RowService",
    "TableAccessContext",
    "TableService",
    "select_strategy",
]
