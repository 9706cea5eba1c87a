import asyncio
import logging
import threading
from typing import Any, Generic, TypeVar

from google.cloud.pubsub_v1.subscriber.futures import StreamingPullFuture
from google.cloud.pubsub_v1.types import FlowControl
from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from retrypubsub.clients.handlers import CallbackHandler
from retrypubsub.clients.pubsub import PubSubClient
from retrypubsub.concurrency.utils import ensure_async_callable_function
from retrypubsub.datastructures import SubscriberConfig
from retrypubsub.exceptions import DeserializationError, ProvisioningError, SerializationError
from retrypubsub.logger import logger as default_logger
from retrypubsub.provisioner import PubSubProvisioner
from retrypubsub.pubsub.publisher import Publisher
from retrypubsub.types import MessageHandler

T = TypeVar("T")


class Subscriber(Generic[T]):
    """Consumes a subscription with a counted retry and dead-letter policy.

    Failed deliveries are never left to the transport redelivery: a handler
    raising ``Retry`` gets the message republished on the same topic with the
    ``retries`` attribute incremented, and once ``max_retries`` is reached (or
    the body can not be parsed, or the handler crashes) the raw message goes
    to ``<topic>_dlq``. The original delivery is always acknowledged.

    Example:
        config = SubscriberConfig(
            project_id="my-project",
            topic_name="orders",
            subscription_name="orders-worker",
            payload_type=Order,
        )
        subscriber = Subscriber(process_order, config)
        subscriber.run()
    """

    def __init__(
        self,
        func: MessageHandler[T],
        config: SubscriberConfig,
        *,
        client: PubSubClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        ensure_async_callable_function(func)

        self.handler = func
        self.config = config
        self.logger = logger or default_logger
        self.client = client or PubSubClient(project_id=config.project_id)
        self.provisioner = PubSubProvisioner(self.client)
        self.publisher = Publisher(self.client, self.provisioner)

        self._adapter: TypeAdapter[Any] = TypeAdapter(config.payload_type)
        self._future: StreamingPullFuture | None = None
        self._shutdown_requested = threading.Event()

    @property
    def name(self) -> str:
        return getattr(self.handler, "__name__", self.config.subscription_name)

    @property
    def running(self) -> bool:
        return self._future is not None and not self._future.done()

    @property
    def flow_control(self) -> FlowControl:
        if self.config.max_messages is None:
            return FlowControl(max_lease_duration=self.config.max_lease_duration_seconds)

        return FlowControl(
            max_messages=self.config.max_messages,
            max_lease_duration=self.config.max_lease_duration_seconds,
        )

    def deserialize(self, data: bytes) -> T:
        try:
            body: T = self._adapter.validate_json(data)
        except ValidationError as e:
            raise DeserializationError(str(e)) from e
        return body

    def serialize(self, body: T) -> bytes:
        try:
            return self._adapter.dump_json(body)
        except PydanticSerializationError as e:
            raise SerializationError(f"The message {body!r} is not serializable: {e}") from e

    def run(self) -> None:
        """Provisions the subscription and blocks consuming it until shutdown."""
        self._shutdown_requested.clear()

        try:
            asyncio.run(
                self.provisioner.ensure_subscription(
                    subscription_name=self.config.subscription_name,
                    topic_name=self.config.topic_name,
                    ack_deadline_seconds=self.config.ack_deadline_seconds,
                )
            )
        except ProvisioningError:
            self.logger.exception(f"Error starting {self.config.subscription_name}")
            raise

        callback_handler = CallbackHandler(self)
        self.logger.info(
            f"Starting consumer {self.config.subscription_name} "
            f"with topic {self.config.topic_name}"
        )

        try:
            with self.client.subscribe(
                self.config.subscription_name,
                callback=callback_handler.handle,
                flow_control=self.flow_control,
            ) as future:
                self._future = future
                if self._shutdown_requested.is_set():
                    future.cancel()
        finally:
            self._future = None

    def shutdown(self) -> None:
        """Stops accepting deliveries; in-flight handlers run to completion."""
        self._shutdown_requested.set()
        if self._future is not None:
            self.logger.info(f"Shutting down the consumer {self.config.subscription_name}")
            self._future.cancel()
