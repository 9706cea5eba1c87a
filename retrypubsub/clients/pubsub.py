import asyncio
import os
import threading
from collections.abc import Generator
from concurrent.futures import CancelledError
from contextlib import contextmanager, suppress

from google.api_core.exceptions import AlreadyExists, NotFound
from google.cloud.pubsub_v1 import PublisherClient, SubscriberClient
from google.cloud.pubsub_v1.subscriber.futures import StreamingPullFuture
from google.cloud.pubsub_v1.types import FlowControl
from google.pubsub_v1 import PublisherAsyncClient, SubscriberAsyncClient, Subscription

from retrypubsub.exceptions import PublishError, TransportError
from retrypubsub.logger import logger
from retrypubsub.types import DeliveryCallback

DEFAULT_PUSH_TIMEOUT = 60.0

# Keyword arguments of PublisherClient.publish that can not be message attributes.
RESERVED_PUBLISH_ARGUMENTS = frozenset({"topic", "data", "ordering_key", "retry", "timeout"})


class PubSubClient:
    """Thin adapter over the Google Cloud Pub/Sub clients.

    Administrative calls use a fresh async client per call, so they work
    from any event loop, including the one each delivery runs in. Publishing
    goes through one batching publisher client shared by every delivery.
    """

    def __init__(self, project_id: str) -> None:
        self.project_id = project_id
        self.is_emulator = True if os.getenv("PUBSUB_EMULATOR_HOST") else False

        self._lock = threading.Lock()
        self._publisher_client: PublisherClient | None = None

    @property
    def publisher_client(self) -> PublisherClient:
        with self._lock:
            if self._publisher_client is None:
                self._publisher_client = PublisherClient()
            return self._publisher_client

    def topic_path(self, topic_name: str) -> str:
        return PublisherClient.topic_path(self.project_id, topic_name)

    def subscription_path(self, subscription_name: str) -> str:
        return SubscriberClient.subscription_path(self.project_id, subscription_name)

    async def topic_exists(self, topic_name: str) -> bool:
        client = PublisherAsyncClient()
        topic_path = self.topic_path(topic_name)
        try:
            await client.get_topic(topic=topic_path)
        except NotFound:
            return False
        return True

    async def subscription_exists(self, subscription_name: str) -> bool:
        client = SubscriberAsyncClient()
        subscription_path = self.subscription_path(subscription_name)
        try:
            await client.get_subscription(subscription=subscription_path)
        except NotFound:
            return False
        return True

    async def create_topic(self, topic_name: str) -> str:
        client = PublisherAsyncClient()
        topic_path = self.topic_path(topic_name)

        with suppress(AlreadyExists):
            logger.debug(f"Creating topic '{topic_path}'.")
            await client.create_topic(name=topic_path)
            logger.info(f"Created topic '{topic_path}' sucessfully.")

        return topic_path

    async def create_subscription(
        self, subscription_name: str, topic_name: str, ack_deadline_seconds: int
    ) -> str:
        client = SubscriberAsyncClient()
        subscription_request = Subscription(
            name=self.subscription_path(subscription_name),
            topic=self.topic_path(topic_name),
            ack_deadline_seconds=ack_deadline_seconds,
        )

        with suppress(AlreadyExists):
            logger.debug(f"Attempting to create subscription: {subscription_request.name}")
            await client.create_subscription(request=subscription_request)
            logger.info(f"Successfully created subscription: {subscription_request.name}")

        return subscription_request.name

    async def publish(
        self, topic_name: str, *, data: bytes, attributes: dict[str, str] | None = None
    ) -> str:
        topic_path = self.topic_path(topic_name)
        attributes = {} if attributes is None else attributes

        reserved = sorted(RESERVED_PUBLISH_ARGUMENTS.intersection(attributes))
        if reserved:
            raise PublishError(
                f"The attributes {reserved} can not be published to {topic_path}, "
                f"they are reserved by the publisher client."
            )

        try:
            response = self.publisher_client.publish(
                topic=topic_path, data=data, timeout=DEFAULT_PUSH_TIMEOUT, **attributes
            )
            message_id: str = await asyncio.wrap_future(response)
        except Exception as e:
            raise PublishError(f"Could not publish the message to {topic_path}: {e}") from e

        logger.info(f"Message published for topic {topic_path} with id {message_id}")
        logger.debug(f"We sent {data!r} with metadata {attributes}")
        return message_id

    @contextmanager
    def subscribe(
        self,
        subscription_name: str,
        callback: DeliveryCallback,
        flow_control: FlowControl,
    ) -> Generator[StreamingPullFuture]:
        """
        Starts listening for messages on the Pub/Sub subscription.
        Leaving the context blocks until the streaming pull is cancelled or fails.
        """
        subscription_path = self.subscription_path(subscription_name)

        with SubscriberClient() as client:
            logger.info(f"Listening for messages on {subscription_path}")
            streaming_pull_future = client.subscribe(
                subscription_path,
                callback=callback,
                flow_control=flow_control,
                await_callbacks_on_shutdown=True,
            )

            try:
                yield streaming_pull_future
                self._wait_streaming_pull(streaming_pull_future, subscription_name)
            finally:
                logger.debug(f"Sending cancel streaming pull command for '{subscription_name}'.")
                streaming_pull_future.cancel()
                logger.debug(f"Subscriber '{subscription_name}' has shutdown.")

    def _wait_streaming_pull(self, future: StreamingPullFuture, subscription_name: str) -> None:
        try:
            future.result()
        except KeyboardInterrupt:
            logger.debug(f"Subscriber '{subscription_name}' stopped by user")
        except CancelledError:
            logger.debug(f"Subscriber '{subscription_name}' streaming pull was cancelled")
        except Exception as e:
            logger.exception(
                f"Subscription stream terminated unexpectedly for '{subscription_name}'",
                stacklevel=5,
            )
            raise TransportError(
                f"The streaming pull of '{subscription_name}' stopped: {e}"
            ) from e
