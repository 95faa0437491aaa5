"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from app.api.v1 import audit, departments, health, queue_entries, queues, triage

api_router = APIRouter()

# Health check
api_router.include_router(
    health.router,
    prefix="/health",
    tags=["health"],
)

# Departments
api_router.include_router(
    departments.router,
    prefix="/departments",
    tags=["departments"],
)

# Triage intake
api_router.include_router(
    triage.router,
    prefix="/triage",
    tags=["triage"],
)

# Department queues
api_router.include_router(
    queues.router,
    prefix="/queues",
    tags=["queues"],
)

api_router.include_router(
    queue_entries.router,
    prefix="/queue-entries",
    tags=["queues"],
)

# Audit
api_router.include_router(
    audit.router,
    prefix="/audit",
    tags=["audit"],
)
