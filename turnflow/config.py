# turnflow/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"
    log_json: bool = False  # JSON lines instead of colored console output

    # Dialog engine
    root_dialog: str = "main"  # Dialog begun when a conversation has an empty stack
    prompt_max_retries: int | None = None  # None = re-prompt forever on invalid input
    max_cascade_steps: int = 1000  # Synchronous transitions allowed within one turn

    # Stack persistence
    stack_ttl_seconds: int = 21600  # 6 hours; 0 keeps idle stacks forever

    # Monitoring
    enable_metrics: bool = True

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def stack_ttl_enabled(self) -> bool:
        return self.stack_ttl_seconds > 0

    def validate_values(self) -> list[str]:
        """Return hard configuration errors (empty = valid)"""
        errors = []

        if self.max_cascade_steps < 1:
            errors.append("max_cascade_steps must be >= 1")
        if self.stack_ttl_seconds < 0:
            errors.append("stack_ttl_seconds must be >= 0")
        if self.prompt_max_retries is not None and self.prompt_max_retries < 1:
            errors.append("prompt_max_retries must be >= 1 (or unset for unlimited)")

        return errors


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if s.is_production and s.prompt_max_retries is None:
        warnings.append(
            "prod: prompt_max_retries is unset (a user can be re-prompted forever on invalid input)."
        )

    if s.max_cascade_steps > 10000:
        warnings.append(
            f"max_cascade_steps={s.max_cascade_steps} is very high; a looping flow will hold the turn for a long time."
        )

    if not s.stack_ttl_enabled:
        warnings.append("stack_ttl_seconds=0: abandoned conversations are never expired.")

    if s.is_production and not s.log_json:
        warnings.append("prod: log_json=False (console log format is hard to ingest).")

    return warnings


def validate_or_warn(s: "Settings") -> list[str]:
    """
    Invalid values: hard fail.
    Risky values: return warnings for the caller to log.
    """
    errors = s.validate_values()
    if errors:
        raise ValueError(f"Invalid settings: {'; '.join(errors)}")

    return warn_on_risky_config(s)


settings = Settings()
