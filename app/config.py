from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    log_level: str = "INFO"

    # Peer services
    order_service_url: str = "http://order-service:8000"
    inventory_service_url: str = "http://inventory-service:8001"
    upstream_timeout: float = 5.0

    # Kafka
    kafka_bootstrap_servers: str = "kafka:9092"
    # Every gateway instance must see every notification; leave unset to get
    # a group id unique to this process.
    gateway_consumer_group: str | None = None
    gateway_offset_reset: str = "latest"
    publish_max_retries: int = 3
    publish_retry_backoff: float = 0.3

    # Realtime gateway
    status_cache_size: int = 10_000

    # Observability
    otlp_endpoint: str = "http://jaeger:4318/v1/traces"

    model_config = {"env_file": ".env"}


settings = Settings()
