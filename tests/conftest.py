import asyncio
import os
from dataclasses import dataclass
from typing import Any, List

import pytest

# The module-level app in main.py must not need a live PostgreSQL server.
os.environ.setdefault("DATABASE_URL", "sqlite://")

from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from config import Config
from db import build_engine
from main import create_app
from models import Resource, User


@dataclass
class Participant:
    id: int
    token: str

    @property
    def headers(self) -> dict:
        return {"Cookie": f"session={self.token}"}


class FakeConnection:
    """Stands in for a websocket: records what was sent to it."""

    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        self.sent: List[Any] = []
        self.fail = fail
        self.delay = delay

    async def send_json(self, data: Any) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(data)

    def events(self, name: str) -> List[dict]:
        return [m for m in self.sent if m.get("event") == name]


@pytest.fixture()
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'handoff.db'}"


@pytest.fixture()
def engine(database_url):
    engine = build_engine(database_url, echo=False)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture()
def make_user(session):
    counter = {"n": 0}

    def _make(name: str = "user") -> User:
        counter["n"] += 1
        user = User(
            email=f"{name}{counter['n']}@example.com",
            name=name,
            password_hash="x",
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture()
def donate(session):
    def _donate(owner: User, name: str = "Blanket", **fields) -> Resource:
        resource = Resource(
            owner_id=owner.id,
            name=name,
            category=fields.pop("category", "bedding"),
            description=fields.pop("description", "Warm wool blanket"),
            images=fields.pop("images", ["/uploads/blanket.jpg"]),
            **fields,
        )
        session.add(resource)
        session.commit()
        session.refresh(resource)
        return resource

    return _donate


@pytest.fixture()
def app(database_url, monkeypatch):
    monkeypatch.setattr(Config, "ADMIN_EMAILS", ["admin@example.com"])
    monkeypatch.setattr(Config, "DATABASE_ECHO", False)
    return create_app(database_url)


@pytest.fixture()
def client(app):
    # Entering the client runs the lifespan and shares one event loop
    # between every websocket opened in the test.
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def register(client):
    def _register(name: str, email: str = None) -> Participant:
        email = email or f"{name.lower()}@example.com"
        resp = client.post(
            "/register",
            json={"email": email, "name": name, "password": "s3cret"},
        )
        assert resp.status_code == 201, resp.text
        token = resp.cookies["session"]
        client.cookies.clear()
        return Participant(id=resp.json()["id"], token=token)

    return _register


@pytest.fixture()
def donate_via_api(client):
    def _donate(donor: Participant, name: str = "Blanket", **fields) -> dict:
        payload = {
            "name": name,
            "category": "bedding",
            "description": "Warm wool blanket",
            "images": ["/uploads/blanket.jpg"],
        }
        payload.update(fields)
        resp = client.post("/resources/", json=payload, headers=donor.headers)
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _donate
