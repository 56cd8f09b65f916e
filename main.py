import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from config import Config
from db import build_engine, create_db_and_tables
from errors import ExchangeError, StoreError
from logging_config import setup_logging
from routers import auth, chat, requests, resources, users
from services.eligibility import StandingChecker
from services.relay import ChatRelay
from services.rooms import RoomRegistry

log = logging.getLogger("handoff.app")


def create_app(database_url: Optional[str] = None) -> FastAPI:
    """
    Application factory: engine, chat registry/relay, error handlers and routers.
    """
    setup_logging(Config.LOG_LEVEL, Config.LOG_FILE)
    engine = build_engine(database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        create_db_and_tables(engine)
        log.info("Handoff started")
        yield
        await registry.close()
        engine.dispose()

    app = FastAPI(title="Handoff", lifespan=lifespan)

    standing = StandingChecker(partial(Session, engine))
    registry = RoomRegistry(
        standing,
        send_timeout=Config.CHAT_SEND_TIMEOUT,
        outbox_size=Config.CHAT_OUTBOX_SIZE,
    )
    app.state.engine = engine
    app.state.rooms = registry
    app.state.relay = ChatRelay(registry, standing, max_body=Config.CHAT_MAX_BODY)

    @app.exception_handler(ExchangeError)
    async def exchange_error_handler(request: Request, exc: ExchangeError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(SQLAlchemyError)
    async def store_error_handler(request: Request, exc: SQLAlchemyError):
        log.error("store failure on %s %s", request.method, request.url.path, exc_info=exc)
        err = StoreError()
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    @app.get("/health", tags=["health"])
    def health():
        return {"status": "healthy", "chat": registry.get_stats()}

    app.include_router(auth.router)
    app.include_router(users.router, prefix="/users")
    app.include_router(resources.router, prefix="/resources")
    app.include_router(requests.router, prefix="/requests")
    app.include_router(chat.router)

    return app


app = create_app()
