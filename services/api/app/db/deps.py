from __future__ import annotations

from collections.abc import Generator

from fastapi import Header
from services.api.app.db.database import db_session
from services.api.app.services.auth_context import AuthContext
from sqlalchemy.orm import Session


def get_db() -> Generator[Session, None, None]:
    db = db_session()
    try:
        yield db
    finally:
        db.close()


def get_auth_context(authorization: str | None = Header(default=None)) -> AuthContext:
    return AuthContext.from_authorization_header(authorization)
