from __future__ import annotations

from fastapi import APIRouter

from ..settings import settings

router = APIRouter()


@router.get("/", tags=["health"])
def health():
    return {
        "service": "cleanup-api",
        "message": "Community Cleanup API",
        "version": "1.0.0",
        "status": "running",
        "port": settings.port,
        "environment": settings.normalized_environment,
        "dynamodb": "configured" if settings.ddb_table_name else "missing",
        "paymentsEnabled": bool(settings.payments_enabled),
        "endpoints": [
            "POST /api/cleanup/create",
            "POST /api/cleanup/join",
            "GET /api/cleanup/{campaignId}",
        ],
    }
