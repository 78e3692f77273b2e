"""Workspace and membership models.

Workspaces and their members are managed elsewhere; the engine reads the
membership table to authorize table access.
"""

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tablegraph.db.base import BaseModel


class Workspace(BaseModel):
    """Tenant boundary that owns tables."""

    __tablename__ = "workspaces"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Workspace {self.name}>"


class WorkspaceMember(BaseModel):
    """A user's membership in a workspace."""

    __tablename__ = "workspace_members"

    workspace_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="member")

    __table_args__ = (UniqueConstraint("workspace_id", "user_id", name="uq_workspace_member"),)

    def __repr__(self) -> str:
        return f"<WorkspaceMember {self.user_id}@{self.workspace_id}>"
