from __future__ import annotations

import json
from collections.abc import Sequence

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    "LoggingSettings",
    "MonitorSettings",
    "Settings",
    "print_config",
    "reload_settings",
    "settings",
]


class LoggingSettings(BaseModel):
    """
    Logging settings for the application
    """

    disabled: bool = False
    clear_loggers: bool = True
    console_log_level: str = "WARNING"
    log_file: str | None = None
    log_file_level: str | None = None


class MonitorSettings(BaseModel):
    """
    Capacities and delays for the performance monitor
    """

    realtime_log_capacity: int = Field(default=1000, gt=0)
    alert_log_capacity: int = Field(default=50, gt=0)
    history_capacity: int = Field(default=100, gt=0)
    comparison_iterations: int = Field(default=1, gt=0)
    comparison_delay: float = Field(default=1.0, ge=0)


class Settings(BaseSettings):
    """
    All the settings are powered by pydantic_settings and could be
    populated from the .env file.

    The format to populate the settings is next

    ```sh
    export MODELPROBE__LOGGING__DISABLED=true
    export MODELPROBE__DEFAULT_CONCURRENCY=8
    ```
    """

    model_config = SettingsConfigDict(
        env_prefix="MODELPROBE__",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
        env_file=".env",
    )

    # general settings
    logging: LoggingSettings = LoggingSettings()

    # HTTP settings
    request_follow_redirects: bool = True
    request_timeout: int = 60 * 5  # 5 minutes
    request_connect_timeout: float = 5.0
    request_http2: bool = True
    request_verify: bool = False

    # Probe settings
    default_prompt: str = "Write a ten word joke."
    default_timeout_ms: int = Field(default=10_000, gt=0)
    default_concurrency: int = Field(default=5, gt=0)

    # Monitor settings
    monitor: MonitorSettings = MonitorSettings()

    def generate_env_file(self) -> str:
        """
        Generate the .env file from the current settings
        """
        return Settings._recursive_generate_env(
            self,
            self.model_config["env_prefix"],  # type: ignore  # noqa: PGH003
            self.model_config["env_nested_delimiter"],  # type: ignore  # noqa: PGH003
        )

    @staticmethod
    def _recursive_generate_env(model: BaseModel, prefix: str, delimiter: str) -> str:
        env_file = ""
        add_models = []
        for key, value in model:
            if isinstance(value, BaseModel):
                # nested models are written after the current level
                add_models.append((key, value))
                continue

            tag = f"{prefix}{key.upper()}"
            if isinstance(value, dict):
                env_file += f"{tag}={json.dumps(value)}\n"
            elif isinstance(value, Sequence) and not isinstance(value, str):
                value_str = ",".join(f'"{item}"' for item in value)
                env_file += f"{tag}=[{value_str}]\n"
            elif value is None or value == "":
                env_file += f"{tag}=\n"
            else:
                env_file += f'{tag}="{value}"\n'

        for key, value in add_models:
            env_file += Settings._recursive_generate_env(
                value, f"{prefix}{key.upper()}{delimiter}", delimiter
            )
        return env_file


settings = Settings()


def reload_settings():
    """
    Reload the settings from the environment variables
    """
    new_settings = Settings()
    settings.__dict__.update(new_settings.__dict__)


def print_config():
    """
    Print the current configuration settings
    """
    print(f"Settings: \n{settings.generate_env_file()}")  # noqa: T201
