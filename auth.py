"""Authentication for EasyPrompt.

Opaque session tokens:
- ``generate_secure_token()`` issued at register/login, returned in the JSON
  body and set as an HttpOnly cookie
- only ``hash_token(token)`` is stored, with an expiry (SESSION_MAX_AGE_DAYS)
- bcrypt for password hashing

The current user is optional everywhere except the provider-config routes:
anonymous callers still get the environment-level provider credentials.
"""

import logging
import os
import time
from collections import defaultdict
from typing import Optional

import bcrypt
from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from errors import AuthenticationRequiredError
from keyvault import generate_secure_token, hash_token
from schemas import LoginRequest, RegisterRequest

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_token"
COOKIE_SECURE = os.environ.get("COOKIE_SECURE", "false").lower() in ("true", "1", "yes")


# --- Login Rate Limiter ---

class LoginRateLimiter:
    """IP-based rate limiter for login attempts."""

    def __init__(self, max_attempts: int = 5, window_seconds: int = 300, lockout_seconds: int = 900):
        self.max_attempts = max_attempts
        self.window = window_seconds
        self.lockout = lockout_seconds
        self._attempts: dict[str, list[float]] = defaultdict(list)
        self._lockouts: dict[str, float] = {}

    def check(self, ip: str) -> tuple[bool, int]:
        """Return (allowed, retry_after_seconds). allowed=False means blocked."""
        now = time.time()

        if ip in self._lockouts:
            remaining = self._lockouts[ip] - now
            if remaining > 0:
                return False, int(remaining)
            del self._lockouts[ip]

        cutoff = now - self.window
        self._attempts[ip] = [t for t in self._attempts[ip] if t > cutoff]

        if len(self._attempts[ip]) >= self.max_attempts:
            self._lockouts[ip] = now + self.lockout
            return False, self.lockout

        return True, 0

    def record_attempt(self, ip: str):
        """Record a failed login attempt."""
        self._attempts[ip].append(time.time())

    def reset(self, ip: str):
        self._attempts.pop(ip, None)
        self._lockouts.pop(ip, None)


login_limiter = LoginRateLimiter()


# --- Password helpers ---

def hash_password(password: str) -> str:
    """Hash a password with bcrypt (which only reads the first 72 bytes)."""
    return bcrypt.hashpw(password.encode()[:72], bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a password against its bcrypt hash."""
    return bcrypt.checkpw(plain.encode()[:72], hashed.encode())


# --- Sessions ---

def _session_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE)


def _public_user(user: dict) -> dict:
    return {"id": user["id"], "email": user["email"], "name": user.get("name")}


async def _start_session(request: Request, user: dict) -> JSONResponse:
    settings = request.app.state.settings
    token = generate_secure_token()
    await request.app.state.db.create_session(user["id"], hash_token(token), settings.session_max_age_days)

    response = JSONResponse({"user": _public_user(user), "token": token})
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax",
        max_age=settings.session_max_age_days * 86400,
        path="/",
    )
    return response


def _validation_message(e: ValidationError) -> str:
    first = e.errors()[0]
    return first.get("msg", "Invalid request").removeprefix("Value error, ")


# --- FastAPI dependencies ---

async def get_current_user(request: Request) -> Optional[dict]:
    """The logged-in user as ``{id, email, name}``, or None for anonymous requests."""
    token = _session_token(request)
    if not token:
        return None
    user = await request.app.state.db.get_session_user(hash_token(token))
    if not user:
        logger.debug("Unknown or expired session token")
        return None
    return _public_user(user)


async def require_user(user: Optional[dict] = Depends(get_current_user)) -> dict:
    """FastAPI dependency: reject anonymous requests."""
    if not user:
        raise AuthenticationRequiredError("Not authenticated")
    return user


# --- Auth route handlers (mounted by routers/auth.py) ---

async def register_handler(request: Request) -> JSONResponse:
    """POST /api/auth/register - Create an account and start a session."""
    try:
        body = RegisterRequest.model_validate(await request.json())
    except ValidationError as e:
        return JSONResponse({"error": _validation_message(e)}, status_code=400)
    except ValueError:
        logger.debug("Register: invalid JSON body")
        return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

    db = request.app.state.db
    if await db.get_user_by_email(body.email):
        return JSONResponse({"error": "Email already registered"}, status_code=409)

    user = await db.create_user(body.email, hash_password(body.password), body.name)
    logger.info("User registered", extra={"user_id": user["id"]})
    return await _start_session(request, user)


async def login_handler(request: Request) -> JSONResponse:
    """POST /api/auth/login - Check the password and start a session."""
    ip = request.client.host if request.client else "unknown"

    allowed, retry_after = login_limiter.check(ip)
    if not allowed:
        logger.warning("Login rate limited: ip=%s retry_after=%ds", ip, retry_after)
        return JSONResponse(
            {"error": f"Too many login attempts. Try again in {retry_after} seconds."},
            status_code=429,
            headers={"Retry-After": str(retry_after)},
        )

    try:
        body = LoginRequest.model_validate(await request.json())
    except ValidationError as e:
        return JSONResponse({"error": _validation_message(e)}, status_code=400)
    except ValueError:
        logger.debug("Login: invalid JSON body")
        return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

    user = await request.app.state.db.get_user_by_email(body.email)
    if not user or not verify_password(body.password, user["password_hash"]):
        login_limiter.record_attempt(ip)
        logger.warning("Login failed: ip=%s", ip)
        return JSONResponse({"error": "Invalid email or password"}, status_code=401)

    login_limiter.reset(ip)
    logger.info("Login success", extra={"user_id": user["id"]})
    return await _start_session(request, user)


async def logout_handler(request: Request) -> JSONResponse:
    """POST /api/auth/logout - Revoke the current session."""
    token = _session_token(request)
    if token:
        await request.app.state.db.delete_session(hash_token(token))

    response = JSONResponse({"status": "ok"})
    response.delete_cookie(SESSION_COOKIE, path="/")
    return response


async def me_handler(request: Request) -> JSONResponse:
    """GET /api/auth/me - Return current user info."""
    user = await require_user(await get_current_user(request))
    return JSONResponse({"user": user})
