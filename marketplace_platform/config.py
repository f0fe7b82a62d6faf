"""Platform-wide business settings.

Values come from, in increasing precedence: built-in defaults, a YAML
settings file, and environment variables.
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from decimal import Decimal
from pathlib import Path
from typing import Optional

import yaml

from .errors import ValidationError
from .schemas import SETTINGS_SCHEMA, validate_payload

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / ".marketplace"

ENV_OVERRIDES = {
    "PLATFORM_COMMISSION_PERCENTAGE": "platform_commission_pct",
    "DEFAULT_REVISION_LIMIT": "default_revision_limit",
    "MARKETPLACE_DATA_DIR": "data_dir",
}


@dataclass(frozen=True)
class PlatformSettings:
    """Business rules captured at the time an operation runs."""

    platform_commission_pct: Decimal = Decimal("15")
    default_revision_limit: int = 2
    revision_deadline_extension_hours: int = 48
    default_max_active_tasks: int = 10
    default_completion_rate: float = 50.0
    data_dir: Path = DEFAULT_DATA_DIR

    def __post_init__(self):
        pct = Decimal(str(self.platform_commission_pct))
        if not Decimal("0") <= pct <= Decimal("100"):
            raise ValidationError("platform_commission_pct", str(pct), "must be between 0 and 100")
        object.__setattr__(self, "platform_commission_pct", pct)
        object.__setattr__(self, "data_dir", Path(self.data_dir))


def _coerce(name: str, raw: str):
    """Convert an environment string to the type of the named setting."""
    try:
        if name == "platform_commission_pct":
            return Decimal(raw)
        if name == "data_dir":
            return Path(raw)
        return int(raw)
    except ArithmeticError:
        raise ValidationError(name, raw, "must be a number") from None
    except ValueError:
        raise ValidationError(name, raw, "must be an integer") from None


def load_settings(path: Optional[Path] = None, environ: Optional[dict] = None) -> PlatformSettings:
    """Load settings from a YAML file and environment overrides."""
    environ = os.environ if environ is None else environ
    values = {}

    if path is not None:
        if not Path(path).is_file():
            raise ValidationError("config", str(path), "settings file not found")
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        validate_payload(data, SETTINGS_SCHEMA)
        values.update(data)
        logger.debug("Loaded settings from %s", path)

    known = {f.name for f in fields(PlatformSettings)}
    for env_name, setting in ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw:
            values[setting] = _coerce(setting, raw)

    if "platform_commission_pct" in values:
        values["platform_commission_pct"] = Decimal(str(values["platform_commission_pct"]))

    return replace(PlatformSettings(), **{k: v for k, v in values.items() if k in known})
