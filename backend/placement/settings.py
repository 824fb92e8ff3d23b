from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    # Runtime
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_json: bool = Field(default=True, validation_alias="LOG_JSON")

    # Applicant limits
    max_active_applications: int = Field(
        default=3, validation_alias="PLACEMENT_MAX_ACTIVE_APPLICATIONS"
    )

    # Opportunity limits
    max_slots_per_opportunity: int = Field(
        default=10, validation_alias="PLACEMENT_MAX_SLOTS_PER_OPPORTUNITY"
    )
    max_active_opportunities_per_owner: int = Field(
        default=5, validation_alias="PLACEMENT_MAX_ACTIVE_OPPORTUNITIES_PER_OWNER"
    )
    # New opportunities are hidden until approved; approval publishes them unless disabled.
    publish_on_approval: bool = Field(default=True, validation_alias="PLACEMENT_PUBLISH_ON_APPROVAL")

    # Snapshot location (users.txt / opportunities.txt / applications.txt)
    data_dir: str = Field(default="data", validation_alias="PLACEMENT_DATA_DIR")

    @property
    def is_production(self) -> bool:
        return str(self.environment or "").strip().lower() in ("prod", "production")

    def validate_limits(self) -> None:
        """
        Fail fast on limits that would make the engine unusable.
        """
        problems: list[str] = []
        if int(self.max_active_applications) < 1:
            problems.append("PLACEMENT_MAX_ACTIVE_APPLICATIONS must be >= 1")
        if int(self.max_slots_per_opportunity) < 1:
            problems.append("PLACEMENT_MAX_SLOTS_PER_OPPORTUNITY must be >= 1")
        if int(self.max_active_opportunities_per_owner) < 1:
            problems.append("PLACEMENT_MAX_ACTIVE_OPPORTUNITIES_PER_OWNER must be >= 1")
        if problems:
            raise ValueError("Invalid placement settings: " + "; ".join(problems))

    def public_summary(self) -> dict[str, object]:
        return {
            "environment": self.environment,
            "max_active_applications": int(self.max_active_applications),
            "max_slots_per_opportunity": int(self.max_slots_per_opportunity),
            "max_active_opportunities_per_owner": int(self.max_active_opportunities_per_owner),
            "publish_on_approval": bool(self.publish_on_approval),
            "data_dir": self.data_dir,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    s = Settings()
    s.validate_limits()
    return s


# Backwards-compatible module-level singleton.
settings = get_settings()
