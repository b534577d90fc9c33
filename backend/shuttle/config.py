from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    redis_url: str = "redis://localhost:6379/0"
    store_backend: str = "redis"  # "redis" or "memory"
    redis_key_prefix: str = "shuttle:"
    active_drivers_path: str = "activeDrivers"
    default_route_id: str = "LRT_BUKIT_JALIL"
    default_update_interval_ms: int = 2000
    log_level: str = "INFO"

    model_config = {"env_prefix": "", "case_sensitive": False}


settings = Settings()
