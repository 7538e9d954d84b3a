# eventvalidate/api/v1/api.py

from fastapi import APIRouter
from eventvalidate.api.v1.endpoints import (
    events,
    health,
    payments,
    registrations,
    tickets,
    validation,
)

api_router = APIRouter()

api_router.include_router(health.router)
api_router.include_router(events.router)
api_router.include_router(registrations.router)
api_router.include_router(tickets.router)
api_router.include_router(payments.router)
api_router.include_router(validation.router)
