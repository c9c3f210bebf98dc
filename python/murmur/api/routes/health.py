"""Liveness endpoint. Public: no bearer token required."""

from fastapi import APIRouter

from murmur.responses import success_response

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Return 200 while the process is up.

    Does not touch the database, Redis or the profile directory; a degraded
    collaborator must not take the pod out of rotation.
    """
    return success_response({"status": "ok"})
