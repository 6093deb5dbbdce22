from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    host: str = "0.0.0.0"
    port: int = 8000
    model_name: str = "claude-sonnet-4-5"
    log_level: str = "DEBUG"

    # Server-side default credentials. Empty = not configured; request bodies may override.
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    gemini_api_key: str = ""
    unsplash_access_key: str = ""

    layout_max_tokens: int = 16384
    review_max_tokens: int = 16384
    critique_max_tokens: int = 1024
    plan_max_tokens: int = 300

    dalle_model: str = "dall-e-3"
    gemini_image_model: str = "gemini-2.5-flash-image"
    image_timeout: float = 60.0

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
