import os
from functools import lru_cache
from pathlib import Path

from fastapi import Depends

from src.app_shell.config import DB_FILENAME, DEFAULT_DATA_DIR
from src.app_shell.context import SettlementContext
from src.components.settlement import SettlementEngine
from src.rules.loader import default_rules_path, load_rules
from src.rules.models import Rules


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("SETTLEMENT_DATA_DIR", DEFAULT_DATA_DIR))
        self.db_path = self.data_dir / DB_FILENAME
        self.rules_path = default_rules_path(self.base_dir)
        self.migrations_dir = Path(__file__).resolve().parents[2] / "migrations"


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules(settings: Settings = Depends(get_settings)) -> Rules:
    return load_rules(settings.rules_path)


# --- Component Services ---
def get_settlement_context(
    settings: Settings = Depends(get_settings),
    rules: Rules = Depends(get_rules),
) -> SettlementContext:
    """Adapters and engine over the configured database, built per request."""
    return SettlementContext.create(settings.db_path, rules)


def get_settlement_engine(
    ctx: SettlementContext = Depends(get_settlement_context),
) -> SettlementEngine:
    """Get settlement component service."""
    return ctx.engine
