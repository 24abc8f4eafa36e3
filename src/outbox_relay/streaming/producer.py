"""Kafka-protocol stream producer with acknowledged, batch-at-a-time sends."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from confluent_kafka import KafkaError, KafkaException, Producer

from outbox_relay.config.models import StreamConfig
from outbox_relay.errors import PublishError
from outbox_relay.streaming.auth import build_kafka_auth_config
from outbox_relay.streaming.batch import WireBatch

logger = structlog.get_logger()


def create_producer(config: StreamConfig) -> Producer:
    """Create an idempotent Kafka producer."""
    conf: dict[str, Any] = {
        "bootstrap.servers": config.bootstrap_servers,
        "client.id": config.client_id,
        "enable.idempotence": config.enable_idempotence,
        "acks": config.acks,
        "linger.ms": config.linger_ms,
        # Must cover a whole wire batch, or produce() rejects events that fit it
        "message.max.bytes": max(config.max_batch_bytes, config.max_message_bytes),
    }
    conf.update(build_kafka_auth_config(config))
    return Producer(conf)


class KafkaStreamProducer:
    """One long-lived producer handle shared by every cycle.

    ``send_batch`` returns only after the broker acknowledged every message in
    the batch, and raises PublishError otherwise. Blocking client calls run in
    the default executor.
    """

    def __init__(self, config: StreamConfig, producer: Producer | None = None) -> None:
        self._config = config
        self._producer = producer if producer is not None else create_producer(config)
        self._closed = False

    @property
    def topic(self) -> str:
        return self._config.topic

    def create_batch(self) -> WireBatch:
        return WireBatch(
            self._config.max_batch_bytes,
            max_message_bytes=self._config.max_message_bytes,
        )

    async def send_batch(self, batch: WireBatch) -> None:
        if self._closed:
            msg = "producer is closed"
            raise PublishError(msg)
        if not batch.count:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._send_sync, batch)

    def _send_sync(self, batch: WireBatch) -> None:
        failures: list[KafkaError] = []

        def _on_delivery(err: KafkaError | None, msg: Any) -> None:
            if err is not None:
                failures.append(err)

        try:
            for message in batch.messages:
                self._producer.produce(
                    topic=self._config.topic,
                    key=message.key,
                    value=message.value,
                    headers=message.headers,
                    on_delivery=_on_delivery,
                )
            remaining = self._producer.flush(timeout=self._config.flush_timeout_seconds)
        except (KafkaException, BufferError) as exc:
            raise PublishError(f"produce to {self._config.topic} failed: {exc}") from exc

        if remaining:
            msg = (
                f"{remaining} message(s) to {self._config.topic} not acknowledged "
                f"within {self._config.flush_timeout_seconds}s"
            )
            raise PublishError(msg)
        if failures:
            msg = (
                f"{len(failures)} of {batch.count} message(s) to "
                f"{self._config.topic} rejected: {failures[0]}"
            )
            raise PublishError(msg)
        logger.debug(
            "stream.batch_sent",
            topic=self._config.topic,
            messages=batch.count,
            bytes=batch.size_bytes,
        )

    async def close(self) -> None:
        """Flush anything still queued and release the handle."""
        if self._closed:
            return
        self._closed = True
        loop = asyncio.get_running_loop()
        remaining = await loop.run_in_executor(
            None, self._producer.flush, self._config.flush_timeout_seconds
        )
        if remaining:
            logger.warning("stream.close_unflushed", remaining=remaining)
        logger.info("stream.producer_closed", topic=self._config.topic)
