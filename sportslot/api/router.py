from __future__ import annotations

from fastapi import APIRouter

from sportslot.api.routes import (
    admin_audit,
    admin_bookings,
    admin_points_requests,
    admin_settings,
    admin_users,
    bookings,
    messages,
    penalties,
    points_requests,
)

api_router = APIRouter()

api_router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
api_router.include_router(penalties.router, prefix="/penalties", tags=["penalties"])
api_router.include_router(points_requests.router, prefix="/points/requests", tags=["points-requests"])
api_router.include_router(messages.router, prefix="/messages", tags=["messages"])

# Admin
api_router.include_router(admin_settings.router, prefix="/admin/settings", tags=["admin-settings"])
api_router.include_router(admin_users.router, prefix="/admin/users", tags=["admin-users"])
api_router.include_router(admin_bookings.router, prefix="/admin/bookings", tags=["admin-bookings"])
api_router.include_router(admin_points_requests.router, prefix="/admin/points/requests", tags=["admin-points-requests"])
api_router.include_router(admin_audit.router, prefix="/admin", tags=["admin-audit"])
