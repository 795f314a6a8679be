"""
FastAPI dependencies shared by the routers.
"""
from fastapi import Request

from oauth_runtime.service import TokenService


def get_token_service(request: Request) -> TokenService:
    """Dependency: the TokenService built in the app lifespan."""
    return request.app.state.token_service
