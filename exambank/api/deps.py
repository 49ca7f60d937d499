from fastapi import Request

from exambank.db.router import DatabaseRouter


def get_db_router(request: Request) -> DatabaseRouter:
    """Return the router created at application startup."""

    return request.app.state.db_router
