"""Router package -- one APIRouter per domain, included by app.py."""

from routers.auth import router as auth_router
from routers.prompts import router as prompts_router
from routers.providers import router as providers_router
from routers.provider_configs import router as provider_configs_router

all_routers = [
    auth_router,
    prompts_router,
    providers_router,
    provider_configs_router,
]
