"""Event notifier: best-effort publication of domain events to RabbitMQ."""

from __future__ import annotations

import asyncio
import json
import logging
from concurrent.futures import Future
from typing import Any, Awaitable, Callable

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractExchange
from aio_pika.exceptions import AMQPConnectionError, ChannelClosed, ChannelInvalidStateError

from accounts_api.core.config import Settings
from accounts_api.errors import EventPublishError
from accounts_api.schemas.event import DomainEvent

logger = logging.getLogger(__name__)

ConnectFactory = Callable[[str], Awaitable[AbstractConnection]]

# Conditions meaning "the broker handle is not usable", worth one reconnect.
_RECONNECT_ERRORS = (
    ConnectionError,
    AMQPConnectionError,
    ChannelClosed,
    ChannelInvalidStateError,
)


def _dumps(o: Any) -> bytes:
    return json.dumps(o, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class EventNotifier:
    """
    Publishes domain events to a durable topic exchange.

    The connection and channel are opened lazily on first publish and reused
    across requests. ``emit`` never blocks the caller: it schedules a single
    publish on the event loop attached at startup and returns immediately.
    A publish that hits a dead connection reconnects and retries once; any
    remaining failure is logged and dropped.
    """

    def __init__(
        self,
        url: str,
        exchange_name: str = "user_events",
        *,
        publish_timeout: float = 5.0,
        connect: ConnectFactory = aio_pika.connect_robust,
    ) -> None:
        self._url = url
        self._exchange_name = exchange_name
        self._publish_timeout = publish_timeout
        self._connect = connect
        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._exchange: AbstractExchange | None = None
        self._lock: asyncio.Lock | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending: set[Future] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> EventNotifier:
        return cls(
            settings.rabbitmq_url,
            settings.events_exchange,
            publish_timeout=settings.event_publish_timeout_seconds,
        )

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        """Bind the notifier to the event loop that runs its publishes."""
        self._loop = loop
        self._lock = asyncio.Lock()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def emit(self, event_type: str, payload: dict[str, Any]) -> DomainEvent:
        """Schedule publication of an event and return it without waiting.

        Safe to call from the event loop thread or from worker threads.
        """
        event = DomainEvent.create(event_type, payload)
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.warning("Event loop not attached, dropping event %s", event.event_type)
            return event

        future = asyncio.run_coroutine_threadsafe(self._publish_safely(event), loop)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)
        return event

    async def _publish_safely(self, event: DomainEvent) -> None:
        try:
            await asyncio.wait_for(self.publish(event), timeout=self._publish_timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Timed out publishing event %s (%s)", event.event_type, event.event_id
            )
        except EventPublishError as e:
            logger.error("Failed to publish event %s: %s", event.event_type, e)
        except Exception:
            logger.exception("Unexpected error publishing event %s", event.event_type)

    async def publish(self, event: DomainEvent) -> None:
        """Publish one event, reconnecting and retrying once on a dead connection.

        Raises:
            EventPublishError: If the event could not be delivered.
        """
        try:
            await self._publish_once(event)
        except _RECONNECT_ERRORS as first_error:
            logger.warning(
                "Broker not ready (%s), reconnecting before retrying %s",
                first_error,
                event.event_type,
            )
            await self._reset()
            try:
                await self._publish_once(event)
            except Exception as e:
                raise EventPublishError(str(e)) from e
        except Exception as e:
            raise EventPublishError(str(e)) from e

        logger.info("Published event %s (%s)", event.event_type, event.routing_key)

    async def _publish_once(self, event: DomainEvent) -> None:
        exchange = await self._ensure_exchange()
        message = aio_pika.Message(
            body=_dumps(event.model_dump(mode="json")),
            content_type="application/json",
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            message_id=event.event_id,
            type=event.event_type,
        )
        await exchange.publish(message, routing_key=event.routing_key)

    async def _ensure_exchange(self) -> AbstractExchange:
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if (
                self._exchange is not None
                and self._channel is not None
                and not self._channel.is_closed
            ):
                return self._exchange

            if self._connection is None or self._connection.is_closed:
                logger.info("Connecting to RabbitMQ")
                self._connection = await self._connect(self._url)
            self._channel = await self._connection.channel()
            self._exchange = await self._channel.declare_exchange(
                self._exchange_name, aio_pika.ExchangeType.TOPIC, durable=True
            )
            logger.info("Declared exchange %s", self._exchange_name)
            return self._exchange

    async def _reset(self) -> None:
        connection = self._connection
        self._connection = None
        self._channel = None
        self._exchange = None
        if connection is not None and not connection.is_closed:
            try:
                await connection.close()
            except Exception as e:
                logger.warning("Error closing stale broker connection: %s", e)

    async def drain(self) -> None:
        """Wait for every outstanding publish to finish."""
        if self._pending:
            await asyncio.gather(
                *(asyncio.wrap_future(f) for f in list(self._pending)),
                return_exceptions=True,
            )

    async def close(self) -> None:
        await self.drain()
        if self._channel is not None and not self._channel.is_closed:
            await self._channel.close()
        if self._connection is not None and not self._connection.is_closed:
            await self._connection.close()
        self._connection = None
        self._channel = None
        self._exchange = None
