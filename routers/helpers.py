"""Shared helpers for route modules."""

from fastapi import Request

from actions import AppContext


def get_ctx(request: Request) -> AppContext:
    """FastAPI dependency: the AppContext built in the app lifespan."""
    return request.app.state.ctx
