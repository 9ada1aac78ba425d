"""
Environment overrides applied on top of the JSON config file.
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .config import AppConfig, parse_device, load_config


class EnvSettings(BaseSettings):
    """Settings read from RTD_* environment variables (and an optional .env file)."""

    model_config = SettingsConfigDict(
        env_prefix="RTD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=(),
    )

    config: Optional[str] = Field(default=None)
    log_level: Optional[str] = Field(default=None)
    port: Optional[int] = Field(default=None)
    model_path: Optional[str] = Field(default=None)
    camera_device: Optional[str] = Field(default=None)

    def apply(self, config: AppConfig) -> AppConfig:
        if self.log_level:
            config.app.log_level = self.log_level.upper()
        if self.port:
            config.app.port = self.port
        if self.model_path:
            config.inference.model_path = self.model_path
        if self.camera_device:
            config.camera.device = parse_device(self.camera_device)
        return config


def load_settings(config_path: Optional[str] = None) -> AppConfig:
    env = EnvSettings()
    config = load_config(config_path or env.config)
    return env.apply(config)
