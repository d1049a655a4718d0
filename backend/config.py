from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    openai_api_key: str
    allowed_origins: str = "http://localhost:3000"

    # Optional: set to use an OpenAI-compatible gateway for text generation
    openai_base_url: Optional[str] = None

    # Generation runs on a small fast model, media prep on a cheaper one
    chat_model: str = "gpt-4.1-nano"
    analysis_model: str = "gpt-4o-mini"
    tts_model: str = "tts-1"
    tts_voice: str = "alloy"
    image_model: str = "dall-e-3"
    image_size: str = "1024x1024"

    generation_temperature: float = 0.7
    generation_max_tokens: int = 2000
    regeneration_temperature: float = 0.8  # higher for more variation
    regeneration_max_tokens: int = 1000
    analysis_temperature: float = 0.3
    analysis_max_tokens: int = 800

    max_attempts: int = 3
    retry_base_delay: float = 1.0  # seconds, multiplied by the attempt number

    log_level: str = "INFO"

    @property
    def origins_list(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",")]

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
