"""
Real-Time Metrics Stream Consumer

Kafka consumer folding live metric updates into the real-time metrics store:
- Single-topic subscription from the current offset (no historical replay)
- Bounded queue between intake and upsert with block/drop overflow policy
- Idempotent writes: samples are upserted by (minute, metric name)
- Manual offset commits after each applied message
- Storage failures retried with backoff, then a resubscribe from the committed offset
- Malformed messages logged and skipped
- Reconnection with exponential backoff on transport failures
- Graceful shutdown draining messages already pulled
"""

import asyncio
import json
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import structlog
from aiokafka import AIOKafkaConsumer, TopicPartition
from aiokafka.errors import KafkaError
from prometheus_client import Counter, Gauge, Histogram
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
)

from ecommerce_metrics.analytics.repository import MetricRepository
from ecommerce_metrics.analytics.schemas import RealtimeSample
from ecommerce_metrics.config import KafkaSettings, get_settings
from ecommerce_metrics.exceptions import (
    MalformedStreamMessage,
    StorageUnavailable,
    TransportDisconnected,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

MESSAGES_CONSUMED = Counter(
    "ecommerce_metrics_stream_messages_total",
    "Stream messages handled by the real-time ingestor",
    ["topic", "status"],
)

APPLY_TIME = Histogram(
    "ecommerce_metrics_stream_apply_seconds",
    "Time spent upserting one stream message",
    ["topic"],
)

QUEUE_DEPTH = Gauge(
    "ecommerce_metrics_stream_queue_depth",
    "Messages waiting between intake and upsert",
    ["topic"],
)


# =============================================================================
# MESSAGE DECODING
# =============================================================================

class MetricUpdate(BaseModel):
    """
    Inbound metric payload.

    Either a single sample::

        {"timestamp": "...", "metricName": "page_views", "value": 42}

    or several metrics sharing one timestamp::

        {"timestamp": "...", "metrics": {"page_views": 42, "orders": 3}}
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    timestamp: Union[datetime, int, float, str]
    metric_name: Optional[str] = Field(default=None, alias="metricName")
    value: Optional[float] = None
    metrics: Optional[Dict[str, float]] = None


def decode_metric_message(raw: Any) -> List[RealtimeSample]:
    """
    Decode a raw stream payload into real-time samples.

    Raises:
        MalformedStreamMessage: If the payload is not a usable metric update
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedStreamMessage("payload is not UTF-8") from e

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedStreamMessage(f"payload is not JSON: {e.msg}") from e

    if not isinstance(raw, dict):
        raise MalformedStreamMessage(f"payload must be an object, got {type(raw).__name__}")

    try:
        update = MetricUpdate.model_validate(raw)
        if update.metrics:
            return [
                RealtimeSample(timestamp=update.timestamp, metric_name=name, value=value)
                for name, value in update.metrics.items()
            ]
        if update.metric_name is not None and update.value is not None:
            return [
                RealtimeSample(
                    timestamp=update.timestamp,
                    metric_name=update.metric_name,
                    value=update.value,
                )
            ]
    except ValidationError as e:
        raise MalformedStreamMessage(f"invalid metric update: {e.error_count()} error(s)") from e

    raise MalformedStreamMessage("payload carries no metric value")


# =============================================================================
# STREAM CONSUMER
# =============================================================================

class IngestorState(str, Enum):
    """Lifecycle of the ingestor"""
    DISCONNECTED = "disconnected"
    SUBSCRIBING = "subscribing"
    CONSUMING = "consuming"
    FAILED = "failed"


class OverflowPolicy(str, Enum):
    """What intake does when the apply queue is full"""
    BLOCK = "block"  # park the poll loop until the worker catches up
    DROP = "drop"    # discard the message and count it


@dataclass
class ConsumerConfig:
    """Kafka consumer configuration"""
    topic: str = "analytics-metrics"
    group_id: str = "api-servers"
    bootstrap_servers: str = "localhost:9092"
    auto_offset_reset: str = "latest"
    enable_auto_commit: bool = False  # commit after each upsert
    max_poll_records: int = 500
    poll_timeout_ms: int = 1000
    session_timeout_ms: int = 30000
    heartbeat_interval_ms: int = 10000
    queue_capacity: int = 1000
    overflow_policy: OverflowPolicy = OverflowPolicy.BLOCK
    reconnect_attempts: int = 5
    reconnect_backoff_min_s: float = 1.0
    reconnect_backoff_max_s: float = 30.0
    store_retry_attempts: int = 5
    store_retry_backoff_min_s: float = 0.5
    store_retry_backoff_max_s: float = 10.0
    shutdown_timeout_s: float = 30.0

    @classmethod
    def from_settings(cls, settings: KafkaSettings) -> "ConsumerConfig":
        return cls(
            topic=settings.topic,
            group_id=settings.consumer_group,
            bootstrap_servers=settings.bootstrap_servers,
            auto_offset_reset=settings.auto_offset_reset,
            max_poll_records=settings.max_poll_records,
            poll_timeout_ms=settings.poll_timeout_ms,
            session_timeout_ms=settings.session_timeout_ms,
            heartbeat_interval_ms=settings.heartbeat_interval_ms,
            queue_capacity=settings.queue_capacity,
            overflow_policy=OverflowPolicy(settings.overflow_policy),
            reconnect_attempts=settings.reconnect_attempts,
            reconnect_backoff_min_s=settings.reconnect_backoff_min_s,
            reconnect_backoff_max_s=settings.reconnect_backoff_max_s,
            store_retry_attempts=settings.store_retry_attempts,
            store_retry_backoff_min_s=settings.store_retry_backoff_min_s,
            store_retry_backoff_max_s=settings.store_retry_backoff_max_s,
        )


def create_kafka_consumer(config: ConsumerConfig) -> AIOKafkaConsumer:
    """Create the Kafka consumer; payloads stay raw bytes and are decoded per message"""
    return AIOKafkaConsumer(
        config.topic,
        bootstrap_servers=config.bootstrap_servers,
        group_id=config.group_id,
        auto_offset_reset=config.auto_offset_reset,
        enable_auto_commit=config.enable_auto_commit,
        max_poll_records=config.max_poll_records,
        session_timeout_ms=config.session_timeout_ms,
        heartbeat_interval_ms=config.heartbeat_interval_ms,
    )


_STOP = object()


class RealtimeIngestor:
    """
    Background consumer of the real-time metrics topic.

    The only writer of the real-time store. Each message is upserted by
    (timestamp, metric name), so a redelivered message overwrites rather than
    duplicates.

    Example:
        ingestor = RealtimeIngestor(repository, ConsumerConfig.from_settings(settings.kafka))
        await ingestor.start()
        ...
        await ingestor.stop()
    """

    def __init__(
        self,
        repository: MetricRepository,
        config: Optional[ConsumerConfig] = None,
        consumer_factory: Optional[Callable[[ConsumerConfig], Any]] = None,
    ):
        self.repository = repository
        self.config = config or ConsumerConfig.from_settings(get_settings().kafka)
        self._consumer_factory = consumer_factory or create_kafka_consumer
        self._state = IngestorState.DISCONNECTED
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> IngestorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _set_state(self, state: IngestorState) -> None:
        if state != self._state:
            logger.info("Ingestor state changed", previous=self._state.value, state=state.value)
            self._state = state

    # -------------------------------------------------------------------------
    # lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start consuming in the background. A second call is a no-op."""
        if self.is_running:
            logger.warning("Realtime ingestor already running")
            return

        logger.info(
            "Starting realtime ingestor",
            topic=self.config.topic,
            group_id=self.config.group_id,
            queue_capacity=self.config.queue_capacity,
            overflow_policy=self.config.overflow_policy.value,
        )
        self._stopping.clear()
        self._task = asyncio.create_task(self._run(), name="realtime-ingestor")

    async def stop(self) -> None:
        """
        Stop pulling new messages, finish the ones already pulled, and
        close the consumer. Safe to call more than once.
        """
        if self._task is None:
            return

        logger.info("Stopping realtime ingestor")
        self._stopping.set()
        task, self._task = self._task, None

        try:
            await asyncio.wait_for(task, timeout=self.config.shutdown_timeout_s)
        except asyncio.TimeoutError:
            logger.warning("Realtime ingestor did not drain in time, cancelled")
        except Exception as e:
            logger.error("Realtime ingestor ended with an error", error=str(e), error_type=type(e).__name__)

        if self._state != IngestorState.FAILED:
            self._set_state(IngestorState.DISCONNECTED)
        logger.info("Realtime ingestor stopped")

    # -------------------------------------------------------------------------
    # connection
    # -------------------------------------------------------------------------

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                consumer = await self._connect()
            except TransportDisconnected as e:
                if self._stopping.is_set():
                    break
                self._set_state(IngestorState.FAILED)
                logger.error(
                    "Could not connect to the metrics stream, giving up",
                    attempts=self.config.reconnect_attempts,
                    error=str(e),
                )
                return

            try:
                await self._consume(consumer)
            except TransportDisconnected as e:
                self._set_state(IngestorState.FAILED)
                logger.warning("Metrics stream disconnected, reconnecting", error=str(e))
            except Exception as e:
                self._set_state(IngestorState.FAILED)
                logger.error("Realtime ingestor crashed", error=str(e), error_type=type(e).__name__)
                raise

        self._set_state(IngestorState.DISCONNECTED)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        logger.warning(
            "Metrics stream connection failed, retrying",
            attempt=retry_state.attempt_number,
            backoff_s=round(retry_state.next_action.sleep, 2) if retry_state.next_action else None,
            error=str(outcome.exception()) if outcome else None,
        )

    async def _connect(self):
        """Open and subscribe a consumer, retrying with exponential backoff."""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TransportDisconnected),
            stop=stop_after_attempt(self.config.reconnect_attempts) | stop_when_event_set(self._stopping),
            wait=wait_exponential(
                multiplier=self.config.reconnect_backoff_min_s,
                min=self.config.reconnect_backoff_min_s,
                max=self.config.reconnect_backoff_max_s,
            ),
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._open_consumer()

    async def _open_consumer(self):
        self._set_state(IngestorState.SUBSCRIBING)
        consumer = self._consumer_factory(self.config)
        try:
            await consumer.start()
        except (KafkaError, OSError) as e:
            await self._close_consumer(consumer)
            raise TransportDisconnected(f"subscribe to '{self.config.topic}' failed: {e}") from e

        self._set_state(IngestorState.CONSUMING)
        logger.info("Subscribed to metrics stream", topic=self.config.topic)
        return consumer

    async def _close_consumer(self, consumer) -> None:
        try:
            await consumer.stop()
        except KafkaError as e:
            logger.warning("Error while closing consumer", error=str(e))

    # -------------------------------------------------------------------------
    # intake / apply
    # -------------------------------------------------------------------------

    async def _consume(self, consumer) -> None:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.config.queue_capacity)
        worker = asyncio.create_task(self._apply_loop(consumer, queue), name="realtime-ingestor-apply")

        try:
            while not self._stopping.is_set():
                if worker.done():
                    # the worker stops on exhausted store retries or an unexpected error
                    worker.result()
                    break

                try:
                    batches = await consumer.getmany(
                        timeout_ms=self.config.poll_timeout_ms,
                        max_records=self.config.max_poll_records,
                    )
                except (KafkaError, OSError) as e:
                    raise TransportDisconnected(str(e)) from e

                for messages in batches.values():
                    for message in messages:
                        await self._enqueue(queue, message, worker)
        finally:
            try:
                if not worker.done():
                    await self._put(queue, _STOP, worker)
                await worker
            finally:
                await self._close_consumer(consumer)

    async def _put(self, queue: asyncio.Queue, item: Any, worker: Optional[asyncio.Task]) -> None:
        """Wait for queue space, unless the apply worker ends first."""
        if worker is None:
            await queue.put(item)
            return

        put = asyncio.ensure_future(queue.put(item))
        try:
            done, _ = await asyncio.wait({put, worker}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not put.done():
                put.cancel()
        if put in done:
            return

        # re-raises whatever stopped the worker
        worker.result()
        raise TransportDisconnected("apply worker exited while intake was blocked")

    async def _enqueue(self, queue: asyncio.Queue, message: Any, worker: Optional[asyncio.Task] = None) -> None:
        if self.config.overflow_policy is OverflowPolicy.DROP:
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                MESSAGES_CONSUMED.labels(topic=self.config.topic, status="dropped").inc()
                logger.warning(
                    "Ingest queue full, dropping message",
                    partition=message.partition,
                    offset=message.offset,
                    capacity=self.config.queue_capacity,
                )
                return
        else:
            await self._put(queue, message, worker)
        QUEUE_DEPTH.labels(topic=self.config.topic).set(queue.qsize())

    async def _apply_loop(self, consumer, queue: asyncio.Queue) -> None:
        while True:
            message = await queue.get()
            try:
                if message is _STOP:
                    return
                await self._apply(consumer, message)
            finally:
                queue.task_done()
                QUEUE_DEPTH.labels(topic=self.config.topic).set(queue.qsize())

    async def _apply(self, consumer, message: Any) -> None:
        """Decode one message, upsert its samples, then commit its offset."""
        topic = message.topic
        try:
            samples = decode_metric_message(message.value)
        except MalformedStreamMessage as e:
            MESSAGES_CONSUMED.labels(topic=topic, status="malformed").inc()
            logger.warning(
                "Skipping malformed metric message",
                partition=message.partition,
                offset=message.offset,
                error=str(e),
            )
            await self._commit(consumer, message)
            return

        start_time = time.perf_counter()
        try:
            await self._store(samples)
        except StorageUnavailable as e:
            MESSAGES_CONSUMED.labels(topic=topic, status="error").inc()
            # nothing after this offset may commit; resubscribe from the committed offset
            logger.error(
                "Failed to store metric samples, resubscribing",
                partition=message.partition,
                offset=message.offset,
                attempts=self.config.store_retry_attempts,
                error=str(e),
            )
            raise TransportDisconnected(
                f"store unavailable at offset {message.offset} of partition {message.partition}"
            ) from e

        APPLY_TIME.labels(topic=topic).observe(time.perf_counter() - start_time)
        MESSAGES_CONSUMED.labels(topic=topic, status="success").inc()
        logger.debug("Applied metric message", offset=message.offset, samples=len(samples))
        await self._commit(consumer, message)

    def _log_store_retry(self, retry_state: RetryCallState) -> None:
        MESSAGES_CONSUMED.labels(topic=self.config.topic, status="error").inc()
        outcome = retry_state.outcome
        logger.warning(
            "Metric upsert failed, retrying",
            attempt=retry_state.attempt_number,
            backoff_s=round(retry_state.next_action.sleep, 2) if retry_state.next_action else None,
            error=str(outcome.exception()) if outcome else None,
        )

    async def _store(self, samples: List[RealtimeSample]) -> None:
        """Upsert samples, retrying storage failures with exponential backoff."""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(StorageUnavailable),
            stop=stop_after_attempt(self.config.store_retry_attempts) | stop_when_event_set(self._stopping),
            wait=wait_exponential(
                multiplier=self.config.store_retry_backoff_min_s,
                min=self.config.store_retry_backoff_min_s,
                max=self.config.store_retry_backoff_max_s,
            ),
            before_sleep=self._log_store_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self.repository.upsert_realtime_samples(samples)

    async def _commit(self, consumer, message: Any) -> None:
        partition = TopicPartition(message.topic, message.partition)
        try:
            await consumer.commit({partition: message.offset + 1})
        except KafkaError as e:
            logger.warning("Offset commit failed", partition=message.partition, offset=message.offset, error=str(e))


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

def create_realtime_ingestor(
    repository: MetricRepository,
    settings: Optional[KafkaSettings] = None,
) -> RealtimeIngestor:
    """Create an ingestor configured from settings"""
    settings = settings or get_settings().kafka
    return RealtimeIngestor(repository, ConsumerConfig.from_settings(settings))
