"""
Configuration Management
Business policy and provider settings from YAML files, secrets from the environment
"""
import yaml
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from leadflow.domain.models.working_hours import WorkingHours

DEFAULT_CONFIG_DIR = Path(__file__).parent.parent.parent / "config"
ENV_PLACEHOLDER = re.compile(r"\$\{([A-Z0-9_]+)\}")


class Settings(BaseSettings):
    """Process-level settings loaded from the environment and .env"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    environment: str = "development"
    debug: bool = True

    # API Settings
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = ["http://localhost:3000"]

    # Storage backend: "memory" or "supabase"
    storage_backend: str = "memory"

    # Directory holding default.yaml and <environment>.yaml
    leadflow_config_dir: Optional[str] = None


class CompanyInfo(BaseModel):
    """Sender details used in outbound messages"""
    name: str = "Rendetalje"
    email: str = "info@rendetalje.dk"
    phone: str = "+45 22 65 02 26"


class BusinessSettings(BaseModel):
    """Pricing, scheduling and messaging policy of the business"""
    hourly_rate: float = Field(default=349.0, ge=0, description="DKK per hour, excluding VAT")
    vat_rate: float = Field(default=0.25, ge=0, le=1)
    default_hours: float = Field(default=4.0, gt=0, description="Fallback when hours cannot be estimated")
    currency: str = "DKK"
    offer_ttl_hours: int = Field(default=48, ge=1)
    reminder_lead_hours: int = Field(default=24, ge=1)
    legacy_slots: bool = Field(default=False, description="Reproduce the fixed tomorrow/day-after offsets")
    working_hours: WorkingHours = Field(default_factory=WorkingHours)
    company: CompanyInfo = Field(default_factory=CompanyInfo)


class ConfigManager:
    """
    Layered YAML configuration.

    ``default.yaml`` is overlaid with ``<env>.yaml``; ``${VAR}`` placeholders
    are then filled from the environment. Placeholders whose variable is unset
    are left in place so providers can tell "not configured" from "empty".
    """

    def __init__(self, env: str = "development", config_dir: Optional[Path] = None):
        self.env = env
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        self._config = {}
        for name in ("default", self.env):
            path = self.config_dir / f"{name}.yaml"
            if path.exists():
                self._deep_merge(self._config, self._load_yaml(path))

        self._config = self._substitute_env_vars(self._config)

    def _load_yaml(self, path: Path) -> Dict:
        with open(path, 'r', encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def _substitute_env_vars(self, value: Any) -> Any:
        """Replace ${VAR_NAME} anywhere in strings, recursing into dicts and lists"""
        if isinstance(value, dict):
            return {key: self._substitute_env_vars(item) for key, item in value.items()}
        if isinstance(value, list):
            return [self._substitute_env_vars(item) for item in value]
        if isinstance(value, str) and "${" in value:
            return ENV_PLACEHOLDER.sub(lambda m: os.getenv(m.group(1), m.group(0)), value)
        return value

    def _deep_merge(self, base: Dict, override: Dict) -> None:
        """Recursively merge override into base"""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation
        Example: config.get("business.hourly_rate") -> 349
        """
        value = self._config
        for key in key_path.split('.'):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def get_active_provider(self, provider_type: str) -> str:
        active = self.get(f"providers.{provider_type}.active")
        if not active:
            raise ValueError(f"No active {provider_type} provider configured")
        return active

    def get_provider_config(self, provider_type: str) -> Dict:
        """Settings block of the active provider, e.g. providers.sms.vonage"""
        active = self.get_active_provider(provider_type)
        return dict(self.get(f"providers.{provider_type}.{active}", {}) or {})

    def get_business_settings(self) -> BusinessSettings:
        """Build validated business settings from the ``business`` section"""
        return BusinessSettings(**(self.get("business", {}) or {}))


@lru_cache()
def get_settings() -> Settings:
    """Get cached environment settings"""
    return Settings()


@lru_cache()
def get_config_manager() -> ConfigManager:
    """Get cached config manager for the current environment"""
    settings = get_settings()
    return ConfigManager(env=settings.environment, config_dir=settings.leadflow_config_dir)
