from typing import Annotated, Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Response, WebSocket
from fastapi.responses import JSONResponse
from itsdangerous import BadSignature, URLSafeTimedSerializer
from passlib.context import CryptContext
from sqlmodel import select

from config import Config
from db import SessionDep
from models import User
from schemas import LoginData, UserCreate, UserRead

router = APIRouter(tags=["auth"])

serializer = URLSafeTimedSerializer(Config.SECRET_KEY, salt="session")


pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_session_token(user_id: int) -> str:
    """
    Store user_id in the signed token.
    Example data:
        {"user_id": 3}
    """
    return serializer.dumps({"user_id": user_id})


def verify_session_token(token: str, max_age_seconds: Optional[int] = None) -> Optional[int]:
    """
    Returns the user id if the token is valid,
    or None if token is invalid/expired.
    """
    try:
        data = serializer.loads(token, max_age=max_age_seconds or Config.SESSION_MAX_AGE)
    except BadSignature:
        return None
    if not isinstance(data, dict) or not isinstance(data.get("user_id"), int):
        return None
    return data["user_id"]


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key="session",
        value=token,
        httponly=True,
        secure=Config.COOKIE_SECURE,
        samesite="lax",
        max_age=Config.SESSION_MAX_AGE,
    )


def get_current_user(
    session: SessionDep,
    session_token: Optional[str] = Cookie(default=None, alias="session"),
) -> User:
    """
    Reads the 'session' cookie, verifies the token and looks up the user.
    Raises 401 if not logged in / invalid.
    """
    if session_token is None:
        raise HTTPException(status_code=401, detail="Not logged in")

    user_id = verify_session_token(session_token)
    if user_id is None:
        raise HTTPException(
            status_code=401, detail="Invalid or expired session")

    user = session.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=401, detail="User not found for this session")

    return user


CurrentUserDep = Annotated[User, Depends(get_current_user)]


def require_admin(current: CurrentUserDep) -> User:
    if not current.is_admin:
        raise HTTPException(status_code=403, detail="Administrator access required")
    return current


AdminDep = Annotated[User, Depends(require_admin)]


def websocket_participant(websocket: WebSocket) -> Optional[int]:
    """
    Resolve the participant id for a chat socket from the 'session' cookie,
    falling back to a ``token`` query parameter. Returns None if neither
    carries a valid token. Whether the user still exists is checked on join.
    """
    token = websocket.cookies.get("session") or websocket.query_params.get("token")
    if not token:
        return None
    return verify_session_token(token)


@router.post("/register", status_code=201)
def register(user_in: UserCreate, session: SessionDep, response: Response):
    """
    Register a new user with a hashed password and log them in.
    """
    existing = session.exec(
        select(User).where(User.email == user_in.email)
    ).first()

    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")

    user = User(
        email=user_in.email,
        name=user_in.name,
        password_hash=hash_password(user_in.password),
        is_admin=user_in.email.lower() in Config.ADMIN_EMAILS,
    )

    session.add(user)
    session.commit()
    session.refresh(user)

    if user.id is None:
        raise HTTPException(
            status_code=500, detail="User was not created successfully"
        )

    _set_session_cookie(response, create_session_token(user.id))
    return {"message": "Registration successful", "id": user.id}


@router.post("/login")
def login(payload: LoginData, session: SessionDep, response: Response):
    """
    Log in with email + password, set a signed cookie.
    """
    user = session.exec(
        select(User).where(User.email == payload.email)
    ).first()

    if user is None or not verify_password(payload.password, user.password_hash):
        raise HTTPException(
            status_code=400, detail="Invalid email or password"
        )

    if user.id is None:
        raise HTTPException(
            status_code=500, detail="User has no ID in database"
        )

    _set_session_cookie(response, create_session_token(user.id))
    return {"message": "Login successful", "id": user.id}


@router.post("/logout")
def logout():
    """
    Clear the session cookie.
    """
    response = JSONResponse({"message": "Logged out"})
    response.delete_cookie("session")
    return response


@router.get("/me", response_model=UserRead)
def read_me(current: CurrentUserDep):
    """
    Get info about the currently logged-in user.
    """
    return current
