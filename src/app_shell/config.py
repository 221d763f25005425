import logging
import os
import sys
from pathlib import Path

from src.rules.models import Rules

logger = logging.getLogger(__name__)

DB_FILENAME = "settlement.db"
DEFAULT_DATA_DIR = "./data"


def resolve_data_dir(rules: Rules) -> Path:
    """Data directory from the env var named in ops rules, else ./data."""
    return Path(os.environ.get(rules.ops.data_dir_env, DEFAULT_DATA_DIR))


def resolve_db_path(rules: Rules) -> Path:
    data_dir = resolve_data_dir(rules)
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir / DB_FILENAME


def validate_ops_rules(rules: Rules, base_dir: Path) -> None:
    """
    Validate operational requirements before startup.
    """
    ops = rules.ops

    # 1. Check Required Env
    missing = [env_var for env_var in ops.required_env if env_var not in os.environ]
    if missing:
        logger.critical("Missing required environment variables: %s", ", ".join(missing))
        sys.exit(1)

    # 2. Check migrations are shipped next to the rules
    if not (base_dir / "migrations").is_dir():
        logger.warning("No migrations directory under %s", base_dir)

    logger.info(
        "Configuration validated (rules %s, data dir %s)",
        rules.project.rules_version,
        resolve_data_dir(rules),
    )
