import re

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import ConflictError
from ..models import Workspace
from ..schemas import WorkspaceCreate, WorkspaceOut

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


def generate_slug(name: str) -> str:
    slug = name.lower()
    slug = re.sub(r'[^a-z0-9]+', '-', slug)
    slug = slug.strip('-')
    return slug or "workspace"


@router.get("/", response_model=list[WorkspaceOut])
def list_workspaces(db: Session = Depends(get_db)):
    """List all workspaces sorted by creation date."""
    return db.scalars(select(Workspace).order_by(Workspace.created_at)).all()


@router.post("/", response_model=WorkspaceOut, status_code=201)
def create_workspace(data: WorkspaceCreate, db: Session = Depends(get_db)):
    """Create a workspace (household) with a unique slug derived from its name."""
    slug_base = generate_slug(data.name)
    slug = slug_base

    counter = 1
    while db.scalar(select(Workspace.id).where(Workspace.slug == slug)) is not None:
        slug = f"{slug_base}-{counter}"
        counter += 1

    workspace = Workspace(name=data.name, slug=slug)
    try:
        db.add(workspace)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Could not create workspace", context={"slug": slug})
    db.refresh(workspace)
    return workspace
