import logging
import math
import os
import sys
from pathlib import Path

import psycopg2
from dotenv import load_dotenv
from fastapi import FastAPI

_project_root = Path(__file__).resolve().parents[1]
if str(_project_root) not in sys.path:
    sys.path.append(str(_project_root))

try:
    from backend import app_context
    from backend.app.routes.billing import router as billing_router
    from backend.app.services.billing import get_billing_config, get_billing_sync_service
except ModuleNotFoundError as exc:
    if exc.name != "backend":
        raise
    import app_context  # type: ignore[no-redef]
    from app.routes.billing import router as billing_router  # type: ignore[no-redef]
    from app.services.billing import get_billing_config, get_billing_sync_service  # type: ignore[no-redef]


load_dotenv()

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
    dbname=os.getenv("DB_NAME", "billing_db"),
    user=os.getenv("DB_USER", "billing_user"),
    password=os.getenv("DB_PASSWORD", "billing_pass"),
    connect_timeout=_parse_connect_timeout(os.getenv("DB_CONNECT_TIMEOUT", "5")),
)

logging.basicConfig(
    level=getattr(logging, get_billing_config().log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("billing")


def get_conn():
    return psycopg2.connect(**DB_CFG)


app_context.configure(get_conn=get_conn)

app = FastAPI(title="Subscription Sync API")
app.include_router(billing_router)


@app.on_event("startup")
def setup_billing() -> None:
    # Misconfigured providers fail here rather than on the first webhook.
    service = get_billing_sync_service()
    logger.info("Billing sync service ready with %s", type(service.gateway).__name__)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}
