from functools import lru_cache
from typing import Literal
import os
from pydantic_settings import BaseSettings, SettingsConfigDict

EnvName = Literal["development", "production"]

DEV_TOKEN_SECRET = "dev_secret_change_me_please_1234567890"

def _env_file_for(app_env: EnvName) -> str:
    return ".env.development" if app_env == "development" else ".env.production"

class Settings(BaseSettings):

    # Core
    APP_ENV: EnvName = "development"
    APP_NAME: str = "VIA Offers"
    DEBUG: bool = False
    GIT_SHA: str = "unknown"

    # Session token
    DEMO_TOKEN_SECRET: str = ""
    token_algorithm: str = "HS256"

    # Seller registry
    STORE_REGISTRY_PATH: str = "data/mcp_stores.json"

    # Offer acquisition
    offers_target_count: int = 3
    offers_pool_factor: int = 3              # pool = target * factor
    offers_max_concurrency: int = 3
    offers_rotate_hourly: bool = True
    offers_require_image: bool = True
    offers_use_mock_fallback: bool = True
    offer_base_delay_ms: int = 1400
    offer_step_delay_ms: int = 1700

    # Remote tool calls (seconds)
    mcp_list_timeout_s: float = 6.0
    mcp_call_timeout_s: float = 12.0
    mcp_search_limit: int = 6

    # OpenAI
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4.1-nano"
    openai_timeout_s: int = 30
    clarify_max_questions: int = 2

    # API
    api_prefix: str = "/api"
    ALLOWED_ORIGINS: str = ""
    ALLOW_VERCEL_PREVIEWS: bool = False

    # pydantic-settings config will be set dynamically in the factory below
    model_config = SettingsConfigDict(env_file=None, case_sensitive=True, extra="ignore")

    @property
    def token_secret(self) -> str:
        """Signing secret; short or missing values fall back to the dev secret."""
        s = self.DEMO_TOKEN_SECRET
        if not s or len(s) < 16:
            return DEV_TOKEN_SECRET
        return s

    @property
    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

@lru_cache
def get_settings() -> Settings:
    """
    Factory that chooses the right .env file based on APP_ENV.
    Cache makes it cheap to inject via FastAPI dependencies.
    """
    app_env: EnvName = os.getenv("APP_ENV", "development")  # earliest switch
    env_file = _env_file_for(app_env)
    return Settings(
                _env_file=env_file,  # load .env.development or .env.production
                _env_file_encoding="utf-8"
    )
