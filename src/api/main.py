import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from src.adapters.sqlite.migrator import SQLiteMigrator
from src.api.deps import get_settings
from src.app_shell.config import validate_ops_rules
from src.rules.loader import load_rules

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    logging.basicConfig(level=logging.INFO)
    settings = get_settings()

    # Load rules and validate on startup (fail-fast)
    try:
        rules = load_rules(settings.rules_path)
        validate_ops_rules(rules, settings.base_dir)
        logger.info("Rules loaded from %s", settings.rules_path)
    except (FileNotFoundError, ValueError) as e:
        logger.critical("Rules load failed: %s", e)
        sys.exit(1)

    settings.data_dir.mkdir(parents=True, exist_ok=True)
    SQLiteMigrator(str(settings.db_path), str(settings.migrations_dir)).run_migrations()

    yield
    # Shutdown cleanup if needed


app = FastAPI(
    title="Educator Settlement API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Routers ---
from src.api.routes import admin_balances, admin_settlements  # noqa: E402

app.include_router(
    admin_settlements.router, prefix="/api/admin/settlements", tags=["Admin Settlements"]
)
app.include_router(admin_balances.router, prefix="/api/admin/educators", tags=["Admin Balances"])


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "service": "settlement-api"}
