from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql+asyncpg://postgres:postgres@db:5432/flashsale"
    redis_url: str = "redis://redis:6379/0"
    log_level: str = "INFO"

    # Kafka
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_consumer_group: str = "inventory-service-group"
    publish_max_retries: int = 5
    publish_retry_backoff: float = 0.3

    # Reservation loop (0 = unbounded retries)
    reservation_max_attempts: int = 100
    reservation_backoff_base: float = 0.002
    reservation_backoff_cap: float = 0.1
    reservation_marker_ttl_seconds: int = 7 * 24 * 3600
    reservation_store_max_attempts: int = 3

    # Observability
    otlp_endpoint: str = "http://jaeger:4318/v1/traces"

    model_config = {"env_file": ".env"}


settings = Settings()
