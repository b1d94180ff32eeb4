"""
FastAPI dependencies for authentication.

Sessions are owned by Better Auth in the web app. This backend only asks
Better Auth who the caller is and trusts the returned user id; storage
code performs no authorization of its own.
"""
import logging

import httpx
from fastapi import HTTPException, Request, status

from tododiary.config import settings

logger = logging.getLogger(__name__)

SESSION_PATH = "/api/auth/get-session"
FORWARDED_HEADERS = ("cookie", "authorization")


async def get_current_user_id(request: Request) -> str:
    """
    FastAPI dependency that resolves the Better Auth session to a user id.

    Flow:
    1. Forward the caller's Cookie / Authorization headers to Better Auth
    2. Read user.id from the session payload
    3. Return the user id

    Raises:
        HTTPException 401: No credentials, or no active session
        HTTPException 503: Better Auth unreachable
    """
    headers = {
        name: request.headers[name]
        for name in FORWARDED_HEADERS
        if name in request.headers
    }
    if not headers:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing session credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    url = f"{settings.better_auth_url.rstrip('/')}{SESSION_PATH}"
    try:
        async with httpx.AsyncClient(timeout=settings.better_auth_timeout_seconds) as client:
            response = await client.get(url, headers=headers)
    except httpx.HTTPError as e:
        logger.error(f"Session lookup failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service unavailable"
        )

    payload = None
    if response.status_code == 200 and response.content:
        try:
            payload = response.json()
        except ValueError:
            logger.warning("Session lookup returned a non-JSON body")

    # Better Auth answers `null` when there is no active session
    user_id = ((payload or {}).get("user") or {}).get("id")

    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user_id
