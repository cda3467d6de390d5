import yaml
from pathlib import Path
from typing import Any, Dict, Optional
from pydantic import ValidationError
from mediaopt.domain.errors import ConfigValidationError
from .models import RunConfig

DEFAULT_CONFIG_PATH = Path("conf/mediaopt.yaml")


def load_config_data(config_path: Optional[Path], required: bool = False) -> Dict[str, Any]:
    """Reads the YAML config into a plain mapping.

    A missing file yields an empty mapping unless ``required`` is set.
    """
    if config_path is None:
        return {}
    if not config_path.exists():
        if required:
            raise FileNotFoundError(f"Config file not found: {config_path}")
        return {}

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigValidationError(f"Config file must contain a mapping: {config_path}")

    # Older files nest everything under 'general'
    general = data.pop("general", None)
    if isinstance(general, dict):
        data = {**general, **data}
    return data


def build_config(data: Dict[str, Any], overrides: Optional[Dict[str, Any]] = None) -> RunConfig:
    """Merges CLI overrides (None values ignored) over file data and validates once."""
    merged = dict(data)
    for key, value in (overrides or {}).items():
        if value is not None:
            merged[key] = value
    try:
        return RunConfig(**merged)
    except ValidationError as exc:
        raise ConfigValidationError(_format_validation_error(exc)) from exc


def load_config(config_path: Path, overrides: Optional[Dict[str, Any]] = None) -> RunConfig:
    """Loads YAML config and parses it into a RunConfig."""
    return build_config(load_config_data(config_path, required=True), overrides)


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "Invalid configuration: " + "; ".join(parts)
