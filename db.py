from collections.abc import Generator
from typing import Annotated, Optional

from fastapi import Depends, Request
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from config import Config


def build_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """Create the engine for ``database_url`` (defaults to ``Config.DATABASE_URL``)."""
    url = database_url or Config.DATABASE_URL
    connect_args = {}
    if url.startswith("sqlite"):
        # Store lookups run in the thread pool.
        connect_args["check_same_thread"] = False
    return create_engine(
        url,
        echo=Config.DATABASE_ECHO if echo is None else echo,
        connect_args=connect_args,
    )


def create_db_and_tables(engine: Engine) -> None:
    """Create all tables in the database if they don't exist."""
    SQLModel.metadata.create_all(engine)


def get_session(request: Request) -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    with Session(request.app.state.engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_session)]
