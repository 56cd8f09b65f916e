"""Request ledger.

Owns the lifetime of ``Request`` rows and is the only writer allowed to
create them, so the two ledger invariants live here:

* at most one request per (requester, resource) pair;
* nobody requests a resource they donated.

Both checks run before anything is written.  Creation is serialized per
(requester, resource) key by ``KeyedLocks``; the unique constraint on the
table backs this up when several processes share one database.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from errors import DuplicateRequest, RequestNotFound, ResourceNotFound, SelfRequestDenied
from models import Request, Resource, ResourceStatus
from services.store import ResourceStore

log = logging.getLogger("handoff.ledger")


class KeyedLocks:
    """One ``threading.Lock`` per key, dropped again once nobody holds it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._waiters[key] -= 1
                if not self._waiters[key]:
                    del self._waiters[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


request_locks = KeyedLocks()


class RequestLedger:
    def __init__(self, session: Session, locks: Optional[KeyedLocks] = None) -> None:
        self.session = session
        self.store = ResourceStore(session)
        self.locks = locks if locks is not None else request_locks

    def create_request(self, requester_id: int, resource_id: int) -> Request:
        with self.locks.hold((requester_id, resource_id)):
            resource = self.store.get(resource_id)
            if resource.status == ResourceStatus.REMOVED:
                raise ResourceNotFound()

            # Checked against the recorded owner first, whatever the history.
            if resource.owner_id == requester_id:
                raise SelfRequestDenied()

            if self._find_pair(requester_id, resource_id) is not None:
                raise DuplicateRequest()

            request = Request(
                requester_id=requester_id,
                donor_id=resource.owner_id,
                resource_id=resource_id,
                resource_name=resource.name,
                category=resource.category,
                description=resource.description,
                images=list(resource.images or []),
            )
            self.session.add(request)
            try:
                self.session.commit()
            except IntegrityError:
                self.session.rollback()
                log.info(
                    "duplicate request by user %s for resource %s rejected by store",
                    requester_id,
                    resource_id,
                )
                raise DuplicateRequest()
            self.session.refresh(request)

        log.info(
            "request %s: user %s -> resource %s (donor %s)",
            request.id,
            requester_id,
            resource_id,
            request.donor_id,
        )
        return request

    def _find_pair(self, requester_id: int, resource_id: int) -> Optional[int]:
        return self.session.exec(
            select(Request.id).where(
                Request.requester_id == requester_id,
                Request.resource_id == resource_id,
            )
        ).first()

    def get(self, request_id: int) -> Request:
        request = self.session.get(Request, request_id)
        if request is None:
            raise RequestNotFound()
        return request

    def find_by_requester(self, requester_id: int) -> List[Request]:
        stmt = (
            select(Request)
            .where(Request.requester_id == requester_id)
            .order_by(Request.created_at.desc(), Request.id.desc())
        )
        return list(self.session.exec(stmt).all())

    def find_by_resource(self, resource_id: int) -> List[Request]:
        stmt = (
            select(Request)
            .where(Request.resource_id == resource_id)
            .order_by(Request.created_at, Request.id)
        )
        return list(self.session.exec(stmt).all())

    def exists_for_participant(self, participant_id: int) -> bool:
        """True if the participant requested, was requested from, or has a live donation."""
        in_request = self.session.exec(
            select(Request.id)
            .where(
                or_(
                    Request.requester_id == participant_id,
                    Request.donor_id == participant_id,
                )
            )
            .limit(1)
        ).first()
        if in_request is not None:
            return True

        donated = self.session.exec(
            select(Resource.id)
            .where(
                Resource.owner_id == participant_id,
                Resource.status != ResourceStatus.REMOVED,
            )
            .limit(1)
        ).first()
        return donated is not None

    # Administrative

    def delete(self, request_id: int) -> None:
        request = self.get(request_id)
        self.session.delete(request)
        self.session.commit()
        log.info("request %s deleted", request_id)

    def delete_for_requester(self, requester_id: int) -> int:
        requests = self.find_by_requester(requester_id)
        for req in requests:
            self.session.delete(req)
        self.session.commit()
        return len(requests)
