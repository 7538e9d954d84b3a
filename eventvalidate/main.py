# eventvalidate/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from eventvalidate.api.exception_handlers import register_exception_handlers
from eventvalidate.api.v1.api import api_router
from eventvalidate.core.limiter import limiter
from eventvalidate.core.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("EventValidate engine starting up")
    yield
    logger.info("EventValidate engine shutting down")


app = FastAPI(
    title="EventValidate Registration & Entrance Service",
    version="1.0.0",
    description="""
        Registration, ticketing, payment tracking and entrance validation
        for organization events.

        ## Authentication

        Staff endpoints require a JWT via the `Authorization: Bearer <token>` header.
        Registration, ticket purchase, receipt upload and gateway callbacks are public.
        """,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
register_exception_handlers(app)

origins = [
    "http://localhost:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.get("/")
def read_root():
    return {"status": "EventValidate engine is running"}
