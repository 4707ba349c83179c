from pydantic_settings import BaseSettings
from pydantic import AnyHttpUrl
from typing import Optional


class Settings(BaseSettings):
    APP_NAME: str = "langie-support-agent"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # MCP endpoints - leave unset to run the simulated in-process backends
    MCP_COMMON_URL: Optional[AnyHttpUrl] = None
    MCP_ATLAS_URL: Optional[AnyHttpUrl] = None
    MCP_TIMEOUT_SECONDS: int = 10
    MCP_SIMULATED_LATENCY: float = 0.0

    # Retry config
    RETRY_ATTEMPTS: int = 3
    RETRY_WAIT_SECONDS: int = 1

    # run_to_completion stops once stage_history grows past this
    MAX_STAGE_HISTORY: int = 20

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"


settings = Settings()
