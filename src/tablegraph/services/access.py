"""Authorization gate.

Every table, field and row operation resolves its table through this gate
first: the acting user must be authenticated and a member of the workspace
that owns the table.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tablegraph.core.exceptions import (
    AuthenticationError,
    FieldNotFoundError,
    PermissionDeniedError,
    RowNotFoundError,
    TableNotFoundError,
    WorkspaceNotFoundError,
)
from tablegraph.models.field import TableField
from tablegraph.models.row import TableRow
from tablegraph.models.table import Table
from tablegraph.models.workspace import Workspace, WorkspaceMember
from tablegraph.services.store import load_row


@dataclass
class TableAccessContext:
    """An authorized handle on one table for one user."""

    db: AsyncSession
    user_id: str
    table: Table

    @property
    def table_id(self) -> str:
        return self.table.id

    @property
    def workspace_id(self) -> str:
        return self.table.workspace_id


class AccessGate:
    """Resolve tables, rows and fields for a user, enforcing membership."""

    async def is_member(self, db: AsyncSession, user_id: str, workspace_id: str) -> bool:
        result = await db.execute(
            select(WorkspaceMember.id).where(
                WorkspaceMember.workspace_id == workspace_id,
                WorkspaceMember.user_id == user_id,
            )
        )
        return result.first() is not None

    async def require_workspace_access(
        self,
        db: AsyncSession,
        user_id: str | None,
        workspace_id: str,
    ) -> Workspace:
        """
        Check the user belongs to a workspace.

        Raises:
            AuthenticationError: If there is no user
            WorkspaceNotFoundError: If the workspace doesn't exist
            PermissionDeniedError: If the user is not a member
        """
        if not user_id:
            raise AuthenticationError("Unauthorized")
        workspace = await db.get(Workspace, workspace_id)
        if workspace is None:
            raise WorkspaceNotFoundError(workspace_id)
        if not await self.is_member(db, user_id, workspace_id):
            raise PermissionDeniedError(resource="workspace")
        return workspace

    async def require_table_access(
        self,
        db: AsyncSession,
        user_id: str | None,
        table_id: str,
    ) -> TableAccessContext:
        """
        Authorize access to a table.

        Raises:
            AuthenticationError: If there is no user
            TableNotFoundError: If the table doesn't exist
            PermissionDeniedError: If the user is not a member of the
                table's workspace
        """
        if not user_id:
            raise AuthenticationError("Unauthorized")
        table = await db.get(Table, table_id)
        if table is None:
            raise TableNotFoundError(table_id)
        if not await self.is_member(db, user_id, table.workspace_id):
            raise PermissionDeniedError(resource="table")
        return TableAccessContext(db=db, user_id=user_id, table=table)

    async def require_row_access(
        self,
        db: AsyncSession,
        user_id: str | None,
        row_id: str,
    ) -> tuple[TableAccessContext, TableRow]:
        """Authorize access to the table that owns ``row_id``."""
        if not user_id:
            raise AuthenticationError("Unauthorized")
        row = await load_row(db, row_id)
        if row is None:
            raise RowNotFoundError(row_id)
        ctx = await self.require_table_access(db, user_id, row.table_id)
        return ctx, row

    async def require_field_access(
        self,
        db: AsyncSession,
        user_id: str | None,
        field_id: str,
    ) -> tuple[TableAccessContext, TableField]:
        """Authorize access to the table that owns ``field_id``."""
        if not user_id:
            raise AuthenticationError("Unauthorized")
        field = await db.get(TableField, field_id)
        if field is None:
            raise FieldNotFoundError(field_id)
        ctx = await self.require_table_access(db, user_id, field.table_id)
        return ctx, field
