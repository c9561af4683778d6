"""
Configuration management using Pydantic Settings
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    
    # Database
    DATABASE_URL: str
    
    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    CACHE_ENABLED: bool = True
    
    # Application
    APP_NAME: str = "Lesson Quiz Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8080"]
    
    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 60
    RATE_LIMIT_PER_HOUR: int = 1000
    
    # Quiz Settings
    QUIZ_DEFINITION_CACHE_TTL: int = 300  # 5 minutes
    DEFAULT_PASSING_THRESHOLD: int = 80
    DEFAULT_TIMER_MINUTES: int = 5
    TIMER_TICK_SECONDS: float = 1.0
    FALLBACK_TIP: str = "Review this topic again"
    
    # Credit economy
    CURRENCY_NAME: str = "BitCred"
    PASS_REWARD_CREDITS: float = 0.5
    RETAKE_COST_CREDITS: float = 2.0
    
    # Logging
    LOG_LEVEL: str = "INFO"
    
    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
