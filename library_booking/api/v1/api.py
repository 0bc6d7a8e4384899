# library_booking/api/v1/api.py
from fastapi import APIRouter

from library_booking.api.v1.endpoints import auth, loans, maintenance, reservations

api_router_v1 = APIRouter(prefix="/api/v1")

api_router_v1.include_router(auth.router, prefix="/auth")
api_router_v1.include_router(loans.router, prefix="/loans")
api_router_v1.include_router(reservations.router, prefix="/reservations")
api_router_v1.include_router(maintenance.router, prefix="/maintenance")
