"""Application configuration"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Database
    database_url: str = "sqlite:///./radiofeed.db"

    # Feed
    feed_url: str = ""
    feed_fetch_timeout: float = 30.0

    # Cover art
    asset_base_url: str = "https://www.accuradio.com/static/images/covers300/"
    asset_referer: str = "https://www.accuradio.com/"
    image_cache_dir: str = "./imgs"
    asset_fetch_timeout: float = 30.0
    asset_fetch_delay: float = 0.2  # Pause between consecutive downloads

    # API Configuration
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Server Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 3000

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string into list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]


# Global settings instance
settings = Settings()
