"""API router aggregation."""

from fastapi import APIRouter

from crm.api.v1.activity_logs import router as activity_logs_router
from crm.api.v1.auth import router as auth_router
from crm.api.v1.meetings import router as meetings_router
from crm.api.v1.notes import router as notes_router
from crm.api.v1.subscriptions import router as subscriptions_router
from crm.api.v1.tenants import router as tenants_router
from crm.api.v1.viewing_pin import router as viewing_pin_router

api_router = APIRouter(prefix="/api")
api_router.include_router(auth_router)
api_router.include_router(tenants_router)
api_router.include_router(subscriptions_router)
api_router.include_router(meetings_router)
api_router.include_router(notes_router)
api_router.include_router(viewing_pin_router)
api_router.include_router(activity_logs_router)
