"""Chat eligibility.

A participant has standing to chat once they have donated a resource or
taken part in a request.  Standing is always computed from the current
ledger and store state; nothing is cached on the connection, so a removed
donation is noticed on the very next join or send.
"""

from typing import Callable

from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from errors import NotEligible, ParticipantNotFound
from models import User
from services.ledger import RequestLedger


def is_eligible(session: Session, participant_id: int) -> bool:
    return RequestLedger(session).exists_for_participant(participant_id)


def require_standing(session: Session, participant_id: int) -> None:
    """Raise ``ParticipantNotFound`` or ``NotEligible`` unless the participant may chat."""
    if session.get(User, participant_id) is None:
        raise ParticipantNotFound()
    if not is_eligible(session, participant_id):
        raise NotEligible()


class StandingChecker:
    """Async entry point used by the room registry and the chat relay.

    Each check opens a fresh session and runs in the thread pool so store
    lookups never block the event loop.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    def check(self, participant_id: int) -> None:
        with self.session_factory() as session:
            require_standing(session, participant_id)

    async def __call__(self, participant_id: int) -> None:
        await run_in_threadpool(self.check, participant_id)
