"""Runtime configuration for agromart."""

import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path

# Can be overridden via AGROMART_DATA_DIR environment variable
_default_data_dir = Path(__file__).parent.parent.parent / "data"
DATABASE_FILE = "agromart.db"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    """Settings resolved from the environment."""

    data_dir: Path
    database_url: str
    free_shipping_threshold: Decimal = Decimal("1000")
    flat_shipping_fee: Decimal = Decimal("50")
    log_level: str = "INFO"


def _decimal_env(name: str, default: str) -> Decimal:
    raw = os.environ.get(name, default)
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"{name} must be a decimal number, got {raw!r}") from None


def load_settings() -> Settings:
    """Build Settings from AGROMART_* environment variables."""
    data_dir = Path(os.environ.get("AGROMART_DATA_DIR", _default_data_dir))
    database_url = os.environ.get(
        "AGROMART_DATABASE_URL", f"sqlite:///{data_dir / DATABASE_FILE}"
    )
    return Settings(
        data_dir=data_dir,
        database_url=database_url,
        free_shipping_threshold=_decimal_env("AGROMART_FREE_SHIPPING_THRESHOLD", "1000"),
        flat_shipping_fee=_decimal_env("AGROMART_FLAT_SHIPPING_FEE", "50"),
        log_level=os.environ.get("AGROMART_LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for CLI and server processes."""
    logging.basicConfig(
        level=level or os.environ.get("AGROMART_LOG_LEVEL", "INFO").upper(),
        format=LOG_FORMAT,
    )
