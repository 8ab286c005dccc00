# server/dependencies.py

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from server.core.db import get_async_session
from server.sessions.context import SessionContext


def get_session_context(request: Request) -> SessionContext:
    """Get the registry/broadcaster context from app state."""
    if not hasattr(request.app.state, "sessions"):
        raise RuntimeError("Session context is not initialized in app.state")
    return request.app.state.sessions


# Type aliases for dependencies
ContextDep = Annotated[SessionContext, Depends(get_session_context)]
SessionDep = Annotated[AsyncSession, Depends(get_async_session)]
