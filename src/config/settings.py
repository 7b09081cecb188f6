"""Global service settings"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Centralized configuration.
    Reads configs from env variables.
    """

    app_name: str = "Watch Together"
    server_host: str = "0.0.0.0"
    server_port: int = 8000

    redis_url: str = "redis://localhost:6379"
    room_key_prefix: str = "room:"

    # Empty rooms are kept for a day before Redis drops them
    empty_room_ttl_seconds: int = 60 * 60 * 24

    serialize_room_events: bool = True

    client_origin: str = "*"
    static_dir: str = "src/static"

    log_level: str = "INFO"

    model_config = {"env_file": ".env"}


settings = Settings()
