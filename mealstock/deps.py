"""FastAPI dependencies for the mealstock API.

Provides:
- Database session dependency
- Workspace (tenant) resolution (header -> settings default)
"""

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import get_db
from .errors import NotAuthenticatedError
from .models import Workspace
from .settings import settings

__all__ = ["get_db", "get_workspace"]


def get_workspace(
    db: Session = Depends(get_db),
    x_workspace_id: Optional[str] = Header(None, alias="X-Workspace-Id"),
) -> Workspace:
    """Resolve the tenant for this request.

    Resolution order:
    1. X-Workspace-Id header (UUID, then slug). An unknown value is a 404,
       never a silent fallback to the default workspace.
    2. settings.default_workspace_slug

    Raises:
        NotAuthenticatedError (401) when neither resolves.
    """
    if x_workspace_id:
        workspace: Optional[Workspace] = None
        try:
            workspace = db.get(Workspace, str(uuid.UUID(x_workspace_id)))
        except ValueError:
            workspace = db.scalar(select(Workspace).where(Workspace.slug == x_workspace_id))

        if workspace:
            return workspace
        raise HTTPException(status_code=404, detail=f"Workspace '{x_workspace_id}' not found")

    if settings.default_workspace_slug:
        workspace = db.scalar(
            select(Workspace).where(Workspace.slug == settings.default_workspace_slug)
        )
        if workspace:
            return workspace

    raise NotAuthenticatedError("No workspace: send an X-Workspace-Id header")
