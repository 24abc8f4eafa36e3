"""Connectivity probes for the relay's source and stream."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import psycopg
import structlog
from confluent_kafka.admin import AdminClient

from outbox_relay.config.models import RelayConfig, SourceConfig, StreamConfig
from outbox_relay.source import queries
from outbox_relay.streaming.auth import build_kafka_auth_config

logger = structlog.get_logger()


class Status(StrEnum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class ComponentHealth:
    name: str
    status: Status = Status.UNKNOWN
    detail: str = ""


@dataclass
class RelayHealth:
    components: list[ComponentHealth] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return all(c.status == Status.HEALTHY for c in self.components)

    @property
    def summary(self) -> dict[str, str]:
        return {c.name: c.status.value for c in self.components}


def check_source(config: SourceConfig) -> ComponentHealth:
    """Probe the source database and the outbox table."""
    try:
        with psycopg.connect(config.conninfo) as conn:
            row = conn.execute(queries.count_pending(config)).fetchone()
        pending = row[0] if row else 0
        return ComponentHealth(
            name="source",
            status=Status.HEALTHY,
            detail=f"{pending} pending row(s) in {config.table}",
        )
    except Exception as exc:
        return ComponentHealth(name="source", status=Status.UNHEALTHY, detail=str(exc))


def check_stream(config: StreamConfig) -> ComponentHealth:
    """Probe broker connectivity and the target topic."""
    try:
        admin_conf: dict[str, Any] = {"bootstrap.servers": config.bootstrap_servers}
        admin_conf.update(build_kafka_auth_config(config))
        admin = AdminClient(admin_conf)
        meta = admin.list_topics(topic=config.topic, timeout=5)
        topic = meta.topics.get(config.topic)
        if topic is None or topic.error is not None:
            reason = topic.error if topic is not None else "missing"
            return ComponentHealth(
                name="stream",
                status=Status.UNHEALTHY,
                detail=f"topic {config.topic}: {reason}",
            )
        return ComponentHealth(
            name="stream",
            status=Status.HEALTHY,
            detail=f"{len(meta.brokers)} broker(s), {len(topic.partitions)} partition(s)",
        )
    except Exception as exc:
        return ComponentHealth(name="stream", status=Status.UNHEALTHY, detail=str(exc))


def check_relay_health(config: RelayConfig) -> RelayHealth:
    """Run all probes and return the aggregated result."""
    return RelayHealth(
        components=[check_source(config.source), check_stream(config.stream)]
    )
