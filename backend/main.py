import logging
import math
import os
from typing import Any, Dict

import psycopg2
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend import app_context
from backend.app.routes.billing import router as billing_router
from backend.incident_emails import (
    get_incident_email_metrics,
    shutdown_incident_email_scheduler,
    start_incident_email_scheduler,
)
from backend.mail import EmailConfig, EmailProvider, create_email_provider, load_email_config


load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("trustloops")


def _parse_connect_timeout(raw_value: str) -> int:
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


DB_CFG = dict(
    host=os.getenv("DB_HOST", "127.0.0.1"),
    port=int(os.getenv("DB_PORT", "5432")),
    dbname=os.getenv("DB_NAME", "trustloops"),
    user=os.getenv("DB_USER", "trustloops"),
    password=os.getenv("DB_PASSWORD", "trustloops"),
    connect_timeout=_parse_connect_timeout(os.getenv("DB_CONNECT_TIMEOUT", "5")),
)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]

EMAIL_CONFIG: EmailConfig = load_email_config()

_email_provider: EmailProvider = create_email_provider(EMAIL_CONFIG)


def get_email_provider() -> EmailProvider:
    return _email_provider


def set_email_provider(provider: EmailProvider) -> None:
    global _email_provider
    _email_provider = provider


def get_conn():
    return psycopg2.connect(**DB_CFG)


app_context.configure(get_conn=get_conn, get_email_provider=get_email_provider)


app = FastAPI(title="TrustLoops API")

# Dashboard origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(billing_router)


@app.on_event("startup")
def _start_incident_email_scheduler() -> None:
    logger.info("Email provider configured", extra=get_email_provider().describe())
    start_incident_email_scheduler()


@app.on_event("shutdown")
def _shutdown_incident_email_scheduler() -> None:
    shutdown_incident_email_scheduler()


@app.get("/api/healthz")
def healthz():
    return {"ok": True}


@app.get("/api/metrics/incident-emails")
def read_incident_email_metrics() -> Dict[str, Any]:
    return get_incident_email_metrics()
