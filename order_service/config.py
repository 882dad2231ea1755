from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql+asyncpg://postgres:postgres@db:5432/flashsale"
    log_level: str = "INFO"

    # Kafka
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_consumer_group: str = "order-service-group"
    publish_max_retries: int = 3
    publish_retry_backoff: float = 0.3

    # Persisting a reservation decision
    decision_max_retries: int = 3
    decision_retry_backoff: float = 0.5

    # Seed product for the flash sale
    seed_product_id: str = "FLASH_SALE_PRODUCT_001"
    seed_product_stock: int = 100

    # Observability
    otlp_endpoint: str = "http://jaeger:4318/v1/traces"

    model_config = {"env_file": ".env"}


settings = Settings()
