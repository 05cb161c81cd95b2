"""
HTTP routers.

    /api/booking/*       booking submission and email verification
    /api/auth/*          booking ID login and client session checks
    /api/auth/admin/*    admin sessions and impersonation tokens
    /api/clients, /api/booking-id/generate   admin client management
"""
from .admin import router as admin_router
from .auth import router as auth_router
from .booking import router as booking_router
from .clients import router as clients_router

__all__ = ["admin_router", "auth_router", "booking_router", "clients_router"]
