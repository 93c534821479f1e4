"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from finance_backend.app.api.v1.endpoints import webhooks, reports, revenues, admin_ops

router = APIRouter()

# Payment provider webhooks
router.include_router(webhooks.router)

# Financial reports
router.include_router(reports.router)
router.include_router(revenues.router)

# Ops endpoints
router.include_router(admin_ops.router)
