"""Pydantic configuration models for the outbox relay."""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Self

from psycopg.conninfo import make_conninfo
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

_IDENTIFIER = re.compile(r"^[a-zA-Z_]\w*$")


class KafkaAuthMechanism(StrEnum):
    """Kafka SASL authentication mechanisms."""

    NONE = "none"
    SASL_PLAIN = "sasl_plain"
    SASL_SCRAM_256 = "sasl_scram_256"
    SASL_SCRAM_512 = "sasl_scram_512"


class MissingFieldPolicy(StrEnum):
    """What the transformer does with a missing or malformed required field."""

    SENTINEL = "sentinel"
    SKIP = "skip"


class LogFormat(StrEnum):
    JSON = "json"
    CONSOLE = "console"


class ColumnMap(BaseModel, extra="forbid"):
    """Maps each PendingRecord payload field to its source column name."""

    device_id: str = "deviceID"
    imei: str = "imei"
    operator: str = "OperadorGps"
    event_time: str = "dateTime"
    inserted_at: str = "insertDateTime"
    bat: str = "bat"
    battery: str = "battery"
    latitude: str = "latitude"
    longitude: str = "longitude"
    speed: str = "speed"
    lock_status: str = "lock_status"
    ignition_status: str = "ignition_status"

    @model_validator(mode="after")
    def check_identifiers(self) -> Self:
        for field_name, column in self.model_dump().items():
            if not _IDENTIFIER.match(column):
                msg = f"Column for '{field_name}' is not a plain identifier: '{column}'"
                raise ValueError(msg)
        return self


class SourceConfig(BaseModel):
    """Connection and table settings for the outbox source database."""

    host: str
    port: int = 5432
    database: str
    username: str
    password: SecretStr = SecretStr("")
    # Schema-qualified outbox table, e.g. "public.main_data"
    table: str = "public.main_data"
    id_column: str = "maindataID"
    processed_column: str = "actualizado3"
    columns: ColumnMap = ColumnMap()
    pool_min_size: int = Field(default=1, ge=0)
    pool_max_size: int = Field(default=10, ge=1)
    connect_timeout_seconds: float = Field(default=10.0, gt=0)
    statement_timeout_seconds: float = Field(default=30.0, gt=0)
    open_max_attempts: int = Field(default=5, ge=1)

    @field_validator("table")
    @classmethod
    def validate_schema_qualified_table(cls, v: str) -> str:
        pattern = re.compile(r"^[a-zA-Z_]\w*\.[a-zA-Z_]\w*$")
        if not pattern.match(v):
            msg = f"table '{v}' must be schema-qualified (e.g. 'public.main_data')"
            raise ValueError(msg)
        return v

    @field_validator("id_column", "processed_column")
    @classmethod
    def validate_column(cls, v: str) -> str:
        if not _IDENTIFIER.match(v):
            msg = f"'{v}' is not a plain column identifier"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def check_pool_bounds(self) -> Self:
        if self.pool_min_size > self.pool_max_size:
            msg = "pool_min_size must not exceed pool_max_size"
            raise ValueError(msg)
        return self

    @property
    def conninfo(self) -> str:
        return make_conninfo(
            host=self.host,
            port=self.port,
            dbname=self.database,
            user=self.username,
            password=self.password.get_secret_value(),
            connect_timeout=int(self.connect_timeout_seconds),
        )


class StreamConfig(BaseModel):
    """Kafka-protocol event stream settings (Kafka, Event Hubs, Redpanda...)."""

    bootstrap_servers: str
    topic: str
    client_id: str = "outbox-relay"
    enable_idempotence: bool = True
    acks: str = "all"
    # Backend ceiling for one wire batch. Event Hubs rejects batches over 1 MB.
    max_batch_bytes: int = Field(default=1_046_528, ge=1024)
    # Largest single message librdkafka will produce (its message.max.bytes).
    max_message_bytes: int = Field(default=1_000_000, ge=1024)
    flush_timeout_seconds: float = Field(default=30.0, gt=0)
    linger_ms: int = Field(default=5, ge=0)
    # Auth / security
    security_protocol: str = "PLAINTEXT"
    auth_mechanism: KafkaAuthMechanism = KafkaAuthMechanism.NONE
    sasl_username: str | None = None
    sasl_password: SecretStr | None = None
    ssl_ca_location: str | None = None

    @field_validator("topic")
    @classmethod
    def validate_topic(cls, v: str) -> str:
        if not re.match(r"^[a-zA-Z0-9._-]+$", v):
            msg = f"topic '{v}' contains characters not allowed in a topic name"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def check_auth_requirements(self) -> Self:
        """Validate that auth-specific fields are present."""
        if self.auth_mechanism != KafkaAuthMechanism.NONE and (
            not self.sasl_username
            or self.sasl_password is None
            or not self.sasl_password.get_secret_value()
        ):
            msg = (
                "sasl_username and sasl_password are required "
                f"when auth_mechanism is '{self.auth_mechanism.value}'"
            )
            raise ValueError(msg)
        return self


class DispatchConfig(BaseModel):
    """Cadence and sizing of the dispatch cycle."""

    read_limit: int = Field(default=1000, ge=1)
    update_chunk_size: int = Field(default=500, ge=1, le=65535)
    interval_seconds: float = Field(default=60.0, gt=0)
    run_on_start: bool = True
    missing_field_policy: MissingFieldPolicy = MissingFieldPolicy.SENTINEL
    source_timezone: str = "UTC"
    log_sample_event: bool = True

    @field_validator("source_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            msg = f"Unknown timezone '{v}'"
            raise ValueError(msg) from exc
        return v


class LoggingConfig(BaseModel):
    format: LogFormat = LogFormat.JSON
    level: str = "INFO"


class RelayConfig(BaseModel, extra="forbid"):
    """Top-level relay configuration."""

    source: SourceConfig
    stream: StreamConfig
    dispatch: DispatchConfig = DispatchConfig()
    logging: LoggingConfig = LoggingConfig()
    health_port: int = Field(default=3000, ge=0, le=65535)
    health_enabled: bool = True
    backlog_monitor_interval_seconds: float = Field(default=0.0, ge=0.0)
