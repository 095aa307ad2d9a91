"""
Queue HTTP endpoints.

Routes only translate HTTP to QueueManager calls; modules are looked up on
app.state so the router can be mounted on any FastAPI app.
"""

import logging

from fastapi import APIRouter, HTTPException, Query, Request, Response
from fastapi.responses import HTMLResponse, RedirectResponse

from waitingflow.exceptions import NotAdmittedError
from waitingflow.modules.queue import DEFAULT_QUEUE, QueueManager

from .models import (
    AllowedUserResponse,
    AllowUserResponse,
    ErrorResponse,
    RankNumberResponse,
    RegisterUserResponse,
    TouchResponse,
)
from .waiting_room import render_waiting_room

logger = logging.getLogger("waitingflow.api")

DEFAULT_COOKIE_MAX_AGE = 300

router = APIRouter()

STORE_ERROR_RESPONSES = {
    503: {"model": ErrorResponse, "description": "Queue store unavailable"},
    504: {"model": ErrorResponse, "description": "Queue store timed out"},
}


def token_cookie_name(queue: str) -> str:
    return f"user-queue-{queue}-token"


def get_queue_manager(request: Request) -> QueueManager:
    queue_manager = getattr(request.app.state, "queue_manager", None)
    if not queue_manager:
        raise HTTPException(503, "Service not initialized")
    return queue_manager


@router.post(
    "/api/v1/queue",
    response_model=RegisterUserResponse,
    responses={409: {"model": ErrorResponse, "description": "User already waiting"}, **STORE_ERROR_RESPONSES},
)
async def register_user(
    request: Request,
    user_id: int = Query(...),
    queue: str = Query(DEFAULT_QUEUE, min_length=1),
):
    """
    Register a user in the wait set.

    Returns:
        200: Rank of the user
        409: User already waiting
    """
    queue_manager = get_queue_manager(request)
    result = await queue_manager.register(queue, user_id)
    return RegisterUserResponse(rank=result.unwrap())


@router.post("/api/v1/queue/allow", response_model=AllowUserResponse, responses=STORE_ERROR_RESPONSES)
async def allow_user(
    request: Request,
    count: int = Query(...),
    queue: str = Query(DEFAULT_QUEUE, min_length=1),
):
    """Admit up to `count` users from the front of the queue."""
    queue_manager = get_queue_manager(request)
    allowed = await queue_manager.promote(queue, count)
    logger.info(f"Manually allowed {allowed} of {count} members of {queue} queue")
    return AllowUserResponse(requested_count=count, allowed_count=allowed)


@router.get("/api/v1/queue/allowed", response_model=AllowedUserResponse, responses=STORE_ERROR_RESPONSES)
async def is_allowed_user(
    request: Request,
    user_id: int = Query(...),
    flight_id: int = Query(...),
    token: str = Query(...),
    queue: str = Query(DEFAULT_QUEUE, min_length=1),
):
    """Check an admission token."""
    queue_manager = get_queue_manager(request)
    allowed = await queue_manager.verify_token(queue, user_id, flight_id, token)
    return AllowedUserResponse(allowed=allowed)


@router.get("/api/v1/queue/rank", response_model=RankNumberResponse, responses=STORE_ERROR_RESPONSES)
async def get_rank_user(
    request: Request,
    user_id: int = Query(...),
    queue: str = Query(DEFAULT_QUEUE, min_length=1),
):
    """Current rank in the wait set (-1 when not waiting)."""
    queue_manager = get_queue_manager(request)
    return RankNumberResponse(rank=await queue_manager.rank(queue, user_id))


@router.get(
    "/api/v1/queue/touch",
    response_model=TouchResponse,
    responses={403: {"model": ErrorResponse, "description": "User not admitted"}, **STORE_ERROR_RESPONSES},
)
async def touch(
    request: Request,
    response: Response,
    user_id: int = Query(...),
    flight_id: int = Query(...),
    queue: str = Query(DEFAULT_QUEUE, min_length=1),
):
    """
    Mint the admission token for an admitted user and set it as a cookie.

    Returns:
        200: Token, also in cookie user-queue-<queue>-token
        403: User has not been admitted
    """
    queue_manager = get_queue_manager(request)
    if not await queue_manager.is_admitted(queue, user_id):
        raise NotAdmittedError(queue, str(user_id))

    token = queue_manager.issue_token(queue, user_id, flight_id)
    max_age = getattr(request.app.state, "token_cookie_max_age", DEFAULT_COOKIE_MAX_AGE)
    response.set_cookie(token_cookie_name(queue), token, max_age=max_age, path="/")
    return TouchResponse(token=token)


@router.get("/waiting-room", response_class=HTMLResponse)
async def waiting_room_page(
    request: Request,
    user_id: int = Query(...),
    flight_id: int = Query(...),
    redirect_url: str = Query(...),
    queue: str = Query(DEFAULT_QUEUE, min_length=1),
):
    """
    Redirect admitted users, otherwise put them in line and show their rank.
    """
    queue_manager = get_queue_manager(request)
    token = request.cookies.get(token_cookie_name(queue), "")

    if await queue_manager.verify_token(queue, user_id, flight_id, token):
        return RedirectResponse(redirect_url, status_code=303)

    # Admitted but the cookie is missing or stale: hand out a fresh one
    if await queue_manager.is_admitted(queue, user_id):
        redirect = RedirectResponse(redirect_url, status_code=303)
        max_age = getattr(request.app.state, "token_cookie_max_age", DEFAULT_COOKIE_MAX_AGE)
        redirect.set_cookie(
            token_cookie_name(queue),
            queue_manager.issue_token(queue, user_id, flight_id),
            max_age=max_age,
            path="/",
        )
        return redirect

    # Duplicate registration falls back to the current rank
    result = await queue_manager.register(queue, user_id)
    return HTMLResponse(render_waiting_room(queue, user_id, flight_id, result.rank))
