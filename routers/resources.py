from typing import List, Optional

from fastapi import APIRouter, HTTPException, Response

from db import SessionDep
from models import Resource, ResourceStatus, User
from schemas import ResourceCreate, ResourceStatusUpdate
from services.store import ResourceStore
from .auth import CurrentUserDep

router = APIRouter(tags=["resources"])


def _ensure_owner_or_admin(resource: Resource, user: User, action: str) -> None:
    if resource.owner_id != user.id and not user.is_admin:
        raise HTTPException(
            status_code=403,
            detail=f"You can only {action} resources you donated.",
        )


@router.get("/{resource_id}", response_model=Resource)
def get_resource(resource_id: int, session: SessionDep):
    """
    Get a single resource by ID.
    """
    return ResourceStore(session).get(resource_id)


@router.post("/", response_model=Resource, status_code=201)
def create_resource(resource_in: ResourceCreate, session: SessionDep, current: CurrentUserDep):
    """
    Donate a resource. The current user becomes its owner.
    """
    resource = Resource(
        owner_id=current.id,
        name=resource_in.name,
        category=resource_in.category,
        description=resource_in.description,
        images=resource_in.images,
        quantity=resource_in.quantity,
        location=resource_in.location,
        status=ResourceStatus.AVAILABLE,
    )
    return ResourceStore(session).create(resource)


@router.get("/", response_model=List[Resource])
def list_resources(
    session: SessionDep,
    category: Optional[str] = None,
    status: Optional[ResourceStatus] = None,
    owner_id: Optional[int] = None,
):
    """
    List resources, optionally filtered by category, status and owner.
    """
    return ResourceStore(session).search(category=category, status=status, owner_id=owner_id)


@router.patch("/{resource_id}/status", response_model=Resource)
def update_resource_status(
    resource_id: int,
    update: ResourceStatusUpdate,
    session: SessionDep,
    current: CurrentUserDep,
):
    store = ResourceStore(session)
    _ensure_owner_or_admin(store.get(resource_id), current, "update")
    return store.set_status(resource_id, update.status)


@router.delete("/{resource_id}", status_code=204)
def delete_resource(
    resource_id: int,
    session: SessionDep,
    current: CurrentUserDep,
):
    # Requests made against this resource keep their own snapshot.
    store = ResourceStore(session)
    _ensure_owner_or_admin(store.get(resource_id), current, "delete")
    store.delete(resource_id)
    return Response(status_code=204)
