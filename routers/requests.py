from typing import List

from fastapi import APIRouter, HTTPException, Response

from db import SessionDep
from models import Request as RequestModel
from schemas import RequestCreate
from services.ledger import RequestLedger
from .auth import AdminDep, CurrentUserDep

router = APIRouter(tags=["requests"])


def _visible_to(req: RequestModel, user) -> bool:
    return user.is_admin or user.id in (req.requester_id, req.donor_id)


@router.post("/", response_model=RequestModel, status_code=201)
def create_request(request_data: RequestCreate, session: SessionDep, current: CurrentUserDep):
    """
    Claim interest in a donated resource.
    The resource's status is left untouched: several users may request it.
    """
    return RequestLedger(session).create_request(current.id, request_data.resource_id)


@router.get("/mine", response_model=List[RequestModel])
def list_my_requests(session: SessionDep, current: CurrentUserDep):
    """Requests made by the current user, newest first."""
    return RequestLedger(session).find_by_requester(current.id)


@router.get("/", response_model=List[RequestModel])
def list_requests_for_resource(
    resource_id: int,
    session: SessionDep,
    current: CurrentUserDep,
):
    requests = RequestLedger(session).find_by_resource(resource_id)
    return [req for req in requests if _visible_to(req, current)]


@router.get("/{request_id}", response_model=RequestModel)
def get_request(request_id: int, session: SessionDep, current: CurrentUserDep):
    req = RequestLedger(session).get(request_id)
    if not _visible_to(req, current):
        raise HTTPException(status_code=403, detail="You can only view your own requests.")
    return req


@router.delete("/{request_id}", status_code=204)
def delete_request(request_id: int, session: SessionDep, admin: AdminDep):
    RequestLedger(session).delete(request_id)
    return Response(status_code=204)
