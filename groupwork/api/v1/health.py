from fastapi import APIRouter, Request

from groupwork import __version__
from groupwork.core.config import get_settings

router = APIRouter()


@router.get("/health")
def health(request: Request):
    rid = getattr(request.state, "request_id", None)
    return {
        "status": "ok",
        "version": __version__,
        "environment": get_settings().environment,
        "request_id": rid,
    }
