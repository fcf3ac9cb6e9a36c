"""Application configuration: loads .env, then overrides from settings.json."""

import json
import os
from pathlib import Path

from dotenv import load_dotenv

# Find the project root (where .env lives)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# Runtime settings file for in-app configuration
_SETTINGS_FILE = _PROJECT_ROOT / "data" / "settings.json"


def _load_settings() -> dict:
    """Load saved runtime settings from JSON file."""
    if _SETTINGS_FILE.exists():
        try:
            return json.loads(_SETTINGS_FILE.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def _save_settings(settings: dict):
    """Persist runtime settings to JSON file."""
    _SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    _SETTINGS_FILE.write_text(
        json.dumps(settings, indent=2), encoding="utf-8"
    )


# Load saved settings once at import time
_runtime = _load_settings()


class Config:
    """Central configuration: .env defaults, settings.json overrides."""

    # Paths
    PROJECT_ROOT: Path = _PROJECT_ROOT
    DATABASE_PATH: Path = Path(
        os.getenv("DATABASE_PATH", str(_PROJECT_ROOT / "data" / "shop_ledger.db"))
    )
    EXPORT_PATH: Path = Path(
        os.getenv("EXPORT_PATH", str(_PROJECT_ROOT / "data" / "exports"))
    )

    # Seconds sqlite waits on a locked database before giving up
    DATABASE_TIMEOUT: float = float(os.getenv("DATABASE_TIMEOUT", "5.0"))

    # Invoicing (settings.json overrides .env)
    DEFAULT_TAX_RATE: float = float(_runtime.get(
        "default_tax_rate",
        os.getenv("DEFAULT_TAX_RATE", "7.5"),
    ))
    DEFAULT_LABOR_RATE: float = float(_runtime.get(
        "default_labor_rate",
        os.getenv("DEFAULT_LABOR_RATE", "85.0"),
    ))
    DEFAULT_PAYMENT_METHOD: str = _runtime.get(
        "default_payment_method",
        os.getenv("DEFAULT_PAYMENT_METHOD", "cash"),
    )
    DEFAULT_UNIT_OF_MEASURE: str = "piece"

    # Placeholder ids handed out before a record is saved
    TEMP_ID_PREFIX: str = "temp-"

    # Inventory
    DEFAULT_REORDER_LEVEL: int = int(_runtime.get(
        "default_reorder_level",
        os.getenv("DEFAULT_REORDER_LEVEL", "5"),
    ))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def update_invoice_defaults(cls, tax_rate: float, labor_rate: float,
                                payment_method: str):
        """Update invoicing defaults at runtime and persist to disk."""
        cls.DEFAULT_TAX_RATE = float(tax_rate)
        cls.DEFAULT_LABOR_RATE = float(labor_rate)
        cls.DEFAULT_PAYMENT_METHOD = payment_method

        settings = _load_settings()
        settings["default_tax_rate"] = cls.DEFAULT_TAX_RATE
        settings["default_labor_rate"] = cls.DEFAULT_LABOR_RATE
        settings["default_payment_method"] = payment_method
        _save_settings(settings)

    @classmethod
    def update_reorder_level(cls, level: int):
        """Update the default reorder level for new parts and persist."""
        cls.DEFAULT_REORDER_LEVEL = int(level)
        settings = _load_settings()
        settings["default_reorder_level"] = cls.DEFAULT_REORDER_LEVEL
        _save_settings(settings)
