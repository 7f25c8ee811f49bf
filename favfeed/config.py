"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── TiDB (MySQL-protocol compatible) ───────────────────────────────────
    tidb_host: str = "tidb"
    tidb_port: int = 4000
    tidb_user: str = "root"
    tidb_password: str = ""
    tidb_database: str = "favfeed"
    # Full SQLAlchemy URL, e.g. sqlite+aiosqlite:///./favfeed.db for local runs
    database_url: Optional[str] = None

    @property
    def database_url_resolved(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mysql+aiomysql://{self.tidb_user}:{self.tidb_password}"
            f"@{self.tidb_host}:{self.tidb_port}/{self.tidb_database}"
        )

    # ── Redis ──────────────────────────────────────────────────────────────
    redis_host: str = "redis"
    redis_port: int = 6379
    notification_inbox_ttl: int = 7 * 86400    # 7d TTL for notification inboxes
    notification_inbox_max_size: int = 200     # max items per user inbox
    batch_ttl: int = 7 * 86400                 # batch status is GC'd after this

    # ── Kafka ──────────────────────────────────────────────────────────────
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_topic_post_published: str = "post-published"
    kafka_topic_notifications: str = "notifications"
    kafka_topic_outbound: str = "outbound-notifications"
    kafka_consumer_group_fanout: str = "fanout-worker"
    kafka_consumer_group_notifier: str = "notifier-worker"

    # ── Fan-out ────────────────────────────────────────────────────────────
    follower_page_size: int = 10_000     # follower ids read per query
    dispatch_unit_size: int = 100        # follower ids per notification job
    unit_max_attempts: int = 3
    payload_excerpt_length: int = 280
    delivery_channel: str = "inbox"      # 'inbox' (Redis) | 'outbox' (Kafka)

    # ── Observability ──────────────────────────────────────────────────────
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "favfeed-api"
    environment: str = "development"

    @model_validator(mode="after")
    def _check_fanout_bounds(self) -> "Settings":
        if self.dispatch_unit_size < 1:
            raise ValueError("dispatch_unit_size must be positive")
        if self.dispatch_unit_size >= self.follower_page_size:
            raise ValueError(
                "dispatch_unit_size must be smaller than follower_page_size"
            )
        if self.delivery_channel not in ("inbox", "outbox"):
            raise ValueError("delivery_channel must be 'inbox' or 'outbox'")
        return self

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
