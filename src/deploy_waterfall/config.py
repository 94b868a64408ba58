"""Runtime configuration for the deployment waterfall tool."""

from pydantic import Field
from pydantic_settings import BaseSettings


DEFAULT_PORTAL_URL = (
    "https://portal.azure.com/#blade/HubsExtension/DeploymentDetailsBlade/overview/id/{id}"
)


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Azure Resource Manager
    arm_endpoint: str = Field(
        default="https://management.azure.com",
        validation_alias="WATERFALL_ARM_ENDPOINT"
    )
    api_version: str = Field(
        default="2021-04-01",
        validation_alias="WATERFALL_API_VERSION"
    )

    # Deep link embedded in trace spans; {id} receives the escaped deployment id
    portal_deployment_url: str = Field(
        default=DEFAULT_PORTAL_URL,
        validation_alias="WATERFALL_PORTAL_URL"
    )

    # HTTP behaviour
    request_timeout_seconds: float = Field(
        default=30.0,
        validation_alias="WATERFALL_REQUEST_TIMEOUT"
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        validation_alias="WATERFALL_MAX_RETRIES"
    )
    retry_base_delay: float = Field(
        default=1.0,
        ge=0,
        validation_alias="WATERFALL_RETRY_DELAY"
    )

    log_level: str = Field(
        default="WARNING",
        validation_alias="WATERFALL_LOG_LEVEL"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @property
    def token_resource(self) -> str:
        """Audience requested from the Azure CLI when acquiring a token."""
        return self.arm_endpoint.rstrip("/") + "/"


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings

