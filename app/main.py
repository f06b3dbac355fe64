# app/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from .config import get_settings
from .db import create_db_and_tables
from .logging_config import setup_logging
from .routers import (
    appointments_routes,
    auth_routes,
    businesses_routes,
    professionals_routes,
    services_routes,
    users_routes,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(get_settings().LOG_LEVEL)
    create_db_and_tables()
    logger.info("Scheduling API started")
    yield


app = FastAPI(title="Barbershop Scheduling API", lifespan=lifespan)

app.include_router(auth_routes.router)
app.include_router(users_routes.router)
app.include_router(businesses_routes.router)
app.include_router(professionals_routes.router)
app.include_router(services_routes.router)
app.include_router(appointments_routes.router)


@app.exception_handler(OperationalError)
async def store_unavailable(request: Request, exc: OperationalError):
    logger.error(f"Persistence failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Storage temporarily unavailable"})


@app.get("/health")
def health_check():
    return {"status": "ok"}
