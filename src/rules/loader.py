import logging
import os
import re
from pathlib import Path

import yaml
from pydantic import ValidationError

from src.rules.models import Rules

logger = logging.getLogger(__name__)

RULES_PATH_ENV = "SETTLEMENT_RULES_PATH"

_YAML_FENCE = re.compile(r"^\s*```ya?ml\s*\n(.*?)^\s*```", re.MULTILINE | re.DOTALL)


def default_rules_path(base_dir: Path | None = None) -> Path:
    """Rules path from SETTLEMENT_RULES_PATH, else rules.yaml under base_dir."""
    override = os.environ.get(RULES_PATH_ENV)
    if override:
        return Path(override)
    return (base_dir or Path(os.getcwd())) / "rules.yaml"


def extract_yaml(content: str) -> str:
    """First ```yaml fenced block when the rules were pasted from docs, else the text."""
    match = _YAML_FENCE.search(content)
    return match.group(1) if match else content


def load_rules(path: Path) -> Rules:
    """
    Load and validate the rules file.
    Raises FileNotFoundError if file missing.
    Raises ValueError if YAML or schema invalid.
    """
    if not path.exists():
        raise FileNotFoundError(f"Rules file not found at: {path}")

    try:
        data = yaml.safe_load(extract_yaml(path.read_text()))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML syntax in rules file: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Rules file {path} must contain a mapping at the top level")

    try:
        rules = Rules.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Rules validation failed:\n{e}") from e

    logger.debug("Loaded rules %s from %s", rules.project.rules_version, path)
    return rules
