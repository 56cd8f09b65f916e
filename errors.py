"""Error taxonomy for the exchange core.

Every error carries a stable ``code`` (sent to clients verbatim) and the
HTTP status it maps to.  None of them are fatal to the process: the HTTP
layer turns them into JSON responses and the chat relay turns them into
``error`` events for the originating connection only.
"""

from typing import Any, Optional


class ExchangeError(Exception):
    code = "ExchangeError"
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message}


# Validation

class ValidationError(ExchangeError):
    code = "ValidationError"
    status_code = 400


class SelfRequestDenied(ValidationError):
    code = "SelfRequestDenied"
    status_code = 403
    default_message = "You cannot request your own donated resource."


class DuplicateRequest(ValidationError):
    code = "DuplicateRequest"
    status_code = 409
    default_message = "You have already requested this resource."


class InvalidEvent(ValidationError):
    code = "InvalidEvent"
    default_message = "Malformed chat event"


# Not found

class NotFoundError(ExchangeError):
    code = "NotFound"
    status_code = 404
    default_message = "Not found"


class ResourceNotFound(NotFoundError):
    code = "ResourceNotFound"
    default_message = "Resource not found."


class ParticipantNotFound(NotFoundError):
    code = "ParticipantNotFound"
    default_message = "User not found"


class RoomNotFound(NotFoundError):
    code = "RoomNotFound"
    default_message = "You have not joined this room"


class RequestNotFound(NotFoundError):
    code = "RequestNotFound"
    default_message = "Request not found"


# Eligibility

class EligibilityError(ExchangeError):
    code = "EligibilityError"
    status_code = 403


class NotEligible(EligibilityError):
    code = "NotEligible"
    default_message = "You are not eligible to chat"


class NotAllowed(EligibilityError):
    code = "NotAllowed"
    default_message = "You are not allowed to send a message"


# Storage

class StoreError(ExchangeError):
    code = "StoreError"
    status_code = 503
    default_message = "Internal server error"


class RelayError(StoreError):
    code = "RelayError"
