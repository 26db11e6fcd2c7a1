"""
Centralized settings and path configuration for the pricing service.
"""
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


ENV_PREFIX = 'TOPUP_PRICING_'


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 4 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(ENV_PREFIX + name)
    if value is None or value.strip() == '':
        return default
    return value.strip()


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path

    # Organization configuration (pricing_rules.csv, discounts.csv, storefronts.json, products.json)
    data_dir: Path

    # Response-size cap applied by the storefront lookup, not by the engine
    max_products_per_request: int = 100

    log_level: str = 'INFO'
    log_json: bool = True

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and TOPUP_PRICING_* env vars."""
        root = project_root or get_project_root()

        data_dir = _env('DATA_DIR')
        max_products = _env('MAX_PRODUCTS', '100')
        log_json = _env('LOG_JSON', 'true')

        return cls(
            project_root=root,
            data_dir=Path(data_dir) if data_dir else root / 'data',
            max_products_per_request=int(max_products),
            log_level=_env('LOG_LEVEL', 'INFO').upper(),
            log_json=log_json.lower() in ('true', '1', 'yes', 'on'),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reset_settings():
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
