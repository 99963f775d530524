"""Assistant persona configuration loader."""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel

_DEFAULT_PATH = Path(__file__).parent / "default.yaml"


class Persona(BaseModel):
    """Name, greeting and tone of the adoption assistant."""

    name: str = "Biscuit"
    greeting: str = "Hi! How can I help you today?"
    tone: str = ""


def load_persona(path: Path | None = None) -> Persona:
    """Load the persona from a YAML file.

    Args:
        path: Optional path to a persona YAML file.
              Defaults to default.yaml in this directory.

    Raises:
        FileNotFoundError: If the persona file does not exist.
        yaml.YAMLError: If the file contains invalid YAML.
    """
    config_path = path or _DEFAULT_PATH

    if not config_path.exists():
        raise FileNotFoundError(f"Persona file not found: {config_path}")

    with open(config_path) as f:
        config: dict[str, Any] = yaml.safe_load(f) or {}

    return Persona.model_validate(config)


@lru_cache(maxsize=1)
def get_persona() -> Persona:
    """Default persona, loaded once."""
    return load_persona()
