from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    jwt_secret: str = "dev-secret-change-me-in-production"
    jwt_alg: str = "HS256"
    access_ttl_min: int = 30

    # storage: in-memory unless USE_MONGO=1
    use_mongo: bool = False
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "foodshare"

    # fallback map center (Pereira) used when a donation has no usable coordinates
    default_latitude: float = 4.8133
    default_longitude: float = -75.6961
    geo_jitter: float = 0.02

    verification_code_length: int = 6
    list_limit: int = 50

    log_level: str = "INFO"
    log_format: str = "json"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
