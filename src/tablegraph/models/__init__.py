"""SQLAlchemy models for TableGraph."""

from tablegraph.models.field import FieldType, TableField
from tablegraph.models.relation import TableRelation
from tablegraph.models.row import TableRow
from tablegraph.models.table import Table
from tablegraph.models.workspace import Workspace, WorkspaceMember

__all__ = [
    "FieldType",
    "Table",
    "TableField",
    "TableRelation",
    "TableRow",
    "Workspace",
    "WorkspaceMember",
]
