"""Auth routes: register, login, logout, me."""

from fastapi import APIRouter

import auth

router = APIRouter(tags=["auth"])

# These endpoints are delegated directly to auth module handlers
router.post("/api/auth/register")(auth.register_handler)
router.post("/api/auth/login")(auth.login_handler)
router.post("/api/auth/logout")(auth.logout_handler)
router.get("/api/auth/me")(auth.me_handler)
