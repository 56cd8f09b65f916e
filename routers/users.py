# routers/users.py
from typing import List

from fastapi import APIRouter, HTTPException, Response
from sqlmodel import select

from db import SessionDep
from models import User
from schemas import ProfileRead, UserRead
from services.ledger import RequestLedger
from services.store import ResourceStore
from .auth import CurrentUserDep

router = APIRouter(tags=["users"])


@router.get("/", response_model=List[UserRead])
def list_users(session: SessionDep):
    """
    List all users (debug/admin).
    """
    return session.exec(select(User)).all()


@router.delete("/me", status_code=204)
def delete_own_account(
    session: SessionDep,
    current: CurrentUserDep,
):
    if current.id is None:
        raise HTTPException(status_code=400, detail="User has no id")

    # 1) Requests *made by* this user go with the account
    RequestLedger(session).delete_for_requester(current.id)

    # 2) So do the resources they donated; requests made against them keep
    #    their snapshot and stay with the requesters
    store = ResourceStore(session)
    for resource in store.list_by_owner(current.id):
        store.delete(resource.id)

    session.delete(current)
    session.commit()

    return Response(status_code=204)


@router.get("/{user_id}", response_model=UserRead)
def get_user(user_id: int, session: SessionDep):
    """
    Get a single user by ID.
    """
    user = session.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/{user_id}/profile", response_model=ProfileRead)
def get_profile(user_id: int, session: SessionDep):
    """
    A user together with what they donated and what they requested.
    """
    user = session.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return ProfileRead(
        user=UserRead.model_validate(user),
        donated_resources=ResourceStore(session).list_by_owner(user_id),
        requested_resources=RequestLedger(session).find_by_requester(user_id),
    )
