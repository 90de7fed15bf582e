"""Configuration system for the audit engine.

This module provides configuration management for browser capture,
concurrency pools, retry policy, model calls, performance lookups and
storage, including YAML loading, validation, and environment-specific
overrides.
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator


ENV_VAR = 'SITE_AUDITOR_ENV'


class BrowserSettings(BaseModel):
    """Browser capture settings."""

    engine: str = Field(default="chromium", description="Playwright browser engine")
    headless: bool = Field(default=True)
    launch_args: List[str] = Field(
        default_factory=lambda: ['--no-sandbox', '--disable-setuid-sandbox', '--disable-dev-shm-usage']
    )
    remote_endpoint: Optional[str] = Field(
        default=None,
        description="CDP endpoint of a remote browser; overridden by BROWSER_ENDPOINT"
    )
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        )
    )
    navigation_timeout_ms: int = Field(default=300000, gt=0)
    network_idle_best_effort: bool = Field(
        default=True,
        description="Wait for network idle after load, ignoring a timeout"
    )
    network_idle_timeout_ms: int = Field(default=5000, ge=0)
    scroll_step_px: int = Field(default=250, gt=0)
    scroll_interval_ms: int = Field(default=500, ge=0)
    max_scrolls: int = Field(default=40, ge=0)
    screenshot_quality: int = Field(default=50, ge=1, le=100)
    capture_retries: int = Field(default=2, ge=0)
    capture_retry_delay_ms: int = Field(default=2000, ge=0)
    rule_engine_enabled: bool = Field(default=True)
    rule_engine_script_url: str = Field(
        default="https://cdnjs.cloudflare.com/ajax/libs/axe-core/4.10.0/axe.min.js"
    )
    rule_engine_settle_ms: int = Field(default=2000, ge=0)

    @field_validator('engine')
    @classmethod
    def validate_engine(cls, v):
        if v not in ('chromium', 'firefox', 'webkit'):
            raise ValueError(f"Unsupported browser engine: {v}")
        return v


class ConcurrencySettings(BaseModel):
    """Pool sizes for shared resources."""

    model_max_concurrent: int = Field(default=10, ge=1)
    browser_max_concurrent: int = Field(default=3, ge=1)
    audit_sections_max_concurrent: int = Field(default=2, ge=1)
    competitor_acquisition_pause_ms: int = Field(default=3000, ge=0)


class RetrySettings(BaseModel):
    """Retry policy for model calls."""

    max_attempts: int = Field(default=10, ge=0)
    base_delay_ms: int = Field(default=2000, ge=0)
    max_delay_ms: int = Field(default=60000, ge=0)


class ModelSettings(BaseModel):
    """Structured-output model settings."""

    name: str = Field(default="gemini-2.5-flash")
    max_output_tokens: int = Field(default=8192, gt=0)
    competitor_content_limit: int = Field(default=15000, gt=0)


class PerformanceSettings(BaseModel):
    """Page performance lookup settings."""

    enabled: bool = Field(default=True)
    endpoint: str = Field(default="https://www.googleapis.com/pagespeedonline/v5/runPagespeed")
    strategy: str = Field(default="desktop")
    timeout_seconds: float = Field(default=60.0, gt=0)


class StorageSettings(BaseModel):
    """Durable storage settings; environment variables take precedence."""

    backend: str = Field(default="memory", description="memory or database")
    database_url: str = Field(default="sqlite:///./site_auditor.db")
    artifact_backend: str = Field(default="local", description="local or s3")
    artifacts_path: str = Field(default="./artifacts")
    public_base_url: Optional[str] = Field(default=None)
    bucket: str = Field(default="screenshots")
    s3_prefix: str = Field(default="")
    s3_region: str = Field(default="us-east-1")
    s3_endpoint_url: Optional[str] = Field(default=None)

    @field_validator('backend')
    @classmethod
    def validate_backend(cls, v):
        if v not in {'memory', 'database'}:
            raise ValueError("Storage backend must be 'memory' or 'database'")
        return v

    @field_validator('artifact_backend')
    @classmethod
    def validate_artifact_backend(cls, v):
        if v not in {'local', 's3'}:
            raise ValueError("Artifact backend must be 'local' or 's3'")
        return v


class AuditSettings(BaseModel):
    """Root configuration for the audit engine."""

    environment: str = Field(default="production", description="Environment name")
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    concurrency: ConcurrencySettings = Field(default_factory=ConcurrencySettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    model: ModelSettings = Field(default_factory=ModelSettings)
    performance: PerformanceSettings = Field(default_factory=PerformanceSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        valid_environments = {'production', 'staging', 'development', 'test'}
        if v not in valid_environments:
            raise ValueError(f"Environment must be one of: {valid_environments}")
        return v

    @property
    def browser_endpoint(self) -> Optional[str]:
        return os.environ.get('BROWSER_ENDPOINT') or self.browser.remote_endpoint


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class AuditConfigManager:
    """Manager for audit configuration loading and caching."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to config YAML file. Defaults to config/auditor.yaml
        """
        if config_path is None:
            project_root = Path(__file__).parent.parent
            config_path = project_root / "config" / "auditor.yaml"

        self.config_path = Path(config_path)
        self._config: Optional[AuditSettings] = None
        self._loaded_env = None

    def load_config(self, force_reload: bool = False) -> AuditSettings:
        """Load configuration from YAML file.

        A missing file yields the defaults. Sections under ``environments``
        matching the active environment are merged over the base sections.

        Args:
            force_reload: Force reload even if already cached

        Returns:
            Loaded and validated configuration

        Raises:
            yaml.YAMLError: If YAML is invalid
            ValueError: If configuration validation fails
        """
        current_env = os.environ.get(ENV_VAR, 'production')

        if self._config is not None and not force_reload and current_env == self._loaded_env:
            return self._config

        config_data: Dict[str, Any] = {}
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    config_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise yaml.YAMLError(f"Invalid YAML in {self.config_path}: {e}")

        environments = config_data.pop('environments', {}) or {}
        if current_env != 'production':
            config_data['environment'] = current_env
        environment = config_data.get('environment', 'production')
        if environment in environments:
            config_data = _merge(config_data, environments[environment])

        try:
            self._config = AuditSettings(**config_data)
        except Exception as e:
            raise ValueError(f"Configuration validation failed: {e}")
        self._loaded_env = current_env
        return self._config

    @property
    def config(self) -> AuditSettings:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            return self.load_config()
        return self._config

    @property
    def environment(self) -> str:
        return self.config.environment


# Global config manager instance
_config_manager: Optional[AuditConfigManager] = None


def get_config_manager(config_path: Optional[Union[str, Path]] = None) -> AuditConfigManager:
    """Get global configuration manager.

    Args:
        config_path: Path to config file (only used on first call)
    """
    global _config_manager
    if _config_manager is None:
        _config_manager = AuditConfigManager(config_path)
    return _config_manager


def get_settings() -> AuditSettings:
    """Get the active audit settings."""
    return get_config_manager().config


def reset_config() -> None:
    """Drop the cached configuration manager."""
    global _config_manager
    _config_manager = None
