from fastapi import APIRouter

from groupwork.api.v1.health import router as health_router
from groupwork.api.v1.projects import router as projects_router
from groupwork.api.v1.groups import router as groups_router
from groupwork.api.v1.sprints import router as sprints_router


v1_router = APIRouter()

# ------------------------------------------------------------------
# SYSTEM / CORE
# ------------------------------------------------------------------
v1_router.include_router(health_router, tags=["health"])

# ------------------------------------------------------------------
# GROUP FORMATION / MEMBERSHIP
# ------------------------------------------------------------------
v1_router.include_router(projects_router, tags=["projects"])
v1_router.include_router(groups_router, tags=["groups"])

# ------------------------------------------------------------------
# SPRINTS
# ------------------------------------------------------------------
v1_router.include_router(sprints_router, tags=["sprints"])
