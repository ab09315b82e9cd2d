"""
V1 API router aggregator: wires all endpoint modules together.
"""

from fastapi import APIRouter

from rollcall.api.v1.endpoints import attendance, auth, health, holidays, overtime, reports

api_router = APIRouter()

# Auth (login, refresh, user management)
api_router.include_router(auth.router)

# Check-in / check-out, review, leave
api_router.include_router(attendance.router)

# Daily / monthly reports
api_router.include_router(reports.router)

api_router.include_router(overtime.router)
api_router.include_router(holidays.router)
api_router.include_router(health.router)
