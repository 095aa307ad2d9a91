"""
API Module - Black Box Interface

Purpose: HTTP routing and module orchestration
Interface: REST API endpoints, waiting-room page
Hidden: Request parsing, cookie handling, page rendering

The API module only orchestrates - it contains no business logic.
All logic is delegated to the queue module.
"""

from .models import (
    AllowedUserResponse,
    AllowUserResponse,
    ErrorResponse,
    RankNumberResponse,
    RegisterUserResponse,
    TouchResponse,
)
from .routes import router, token_cookie_name

__all__ = [
    "router",
    "token_cookie_name",
    "RegisterUserResponse",
    "AllowUserResponse",
    "AllowedUserResponse",
    "RankNumberResponse",
    "TouchResponse",
    "ErrorResponse",
]
