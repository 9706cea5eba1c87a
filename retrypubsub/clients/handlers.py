import asyncio
import time
from collections.abc import Generator
from concurrent.futures import Future
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from google.cloud.pubsub_v1.subscriber.exceptions import AcknowledgeError, AcknowledgeStatus
from google.cloud.pubsub_v1.subscriber.message import Message as PubSubMessage

from retrypubsub.datastructures import (
    ERROR_ATTRIBUTE,
    RETRY_COUNT_ATTRIBUTE,
    Message,
    ProcessingOutcome,
)
from retrypubsub.exceptions import DeserializationError, Drop, Retry
from retrypubsub.logger import contextualize

if TYPE_CHECKING:
    from retrypubsub.pubsub.subscriber import Subscriber

# Pub/Sub rejects attribute values longer than this.
MAX_ATTRIBUTE_VALUE_BYTES = 1024


def describe_error(error: BaseException) -> str:
    description = str(error) or error.__class__.__name__
    encoded = description.encode("utf-8")
    if len(encoded) <= MAX_ATTRIBUTE_VALUE_BYTES:
        return description

    return encoded[:MAX_ATTRIBUTE_VALUE_BYTES].decode("utf-8", errors="ignore")


class CallbackHandler:
    """Runs the retry/dead-letter pipeline for every delivered message.

    Each delivery is processed on a transport worker thread within its own
    event loop. Whatever happens to the message, the delivery ends with an
    acknowledgement; the only exception is a failed forward when the
    subscriber is configured to nack on it.
    """

    def __init__(self, subscriber: "Subscriber[Any]") -> None:
        self.subscriber = subscriber
        self.config = subscriber.config
        self.logger = subscriber.logger

    def handle(self, message: PubSubMessage) -> ProcessingOutcome:
        translated_message = self._translate_message(message)

        with self._contextualize(translated_message):
            started = time.perf_counter()
            outcome = asyncio.run(self.process(translated_message))
            elapsed = time.perf_counter() - started

            self._settle(message, outcome=outcome, elapsed=elapsed)
            return outcome

    async def process(self, message: Message) -> ProcessingOutcome:
        try:
            body = self.subscriber.deserialize(message.data)
        except DeserializationError as e:
            self.logger.error(
                f"Cannot deserialize message {message.id} - sending to dlq: {e}",
                extra={"content": message.data.decode("utf-8", errors="replace")},
            )
            return await self._dead_letter(message, e)

        self.logger.info(f"Processing message {message.id}")
        try:
            await self.subscriber.handler(body)
        except Drop:
            self.logger.info("Message will be dropped.")
            return ProcessingOutcome.DROPPED
        except Retry as e:
            return await self._on_handler_error(message, body, e)
        except asyncio.CancelledError as e:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise

            # A cancelled awaitable inside the handler, not a cancelled delivery.
            self.logger.warning(
                f"Consumer awaited a cancelled operation with message {message.id} - "
                "sending to dlq",
                exc_info=True,
            )
            return await self._dead_letter(message, e)
        except Exception as e:
            self.logger.warning(
                f"Consumer crashed with message {message.id} - sending to dlq",
                exc_info=True,
                extra={"content": message.data.decode("utf-8", errors="replace")},
            )
            return await self._dead_letter(message, e)

        self.logger.info("Message successfully processed.")
        return ProcessingOutcome.SUCCEEDED

    async def _on_handler_error(
        self, message: Message, body: Any, error: Retry
    ) -> ProcessingOutcome:
        retry_count = message.retry_count
        self.logger.error(f"Error processing message {message.id}: {describe_error(error)}")

        if retry_count >= self.config.max_retries:
            self.logger.warning(
                f"Message {message.id} reached {retry_count} of "
                f"{self.config.max_retries} retries"
            )
            return await self._dead_letter(message, error)

        return await self._retry(message, body, retry_count)

    async def _retry(self, message: Message, body: Any, retry_count: int) -> ProcessingOutcome:
        attributes = dict(message.attributes)
        attributes[RETRY_COUNT_ATTRIBUTE] = str(retry_count + 1)

        try:
            data = self.subscriber.serialize(body)
            await self.subscriber.publisher.publish(
                self.config.topic_name, data=data, attributes=attributes
            )
        except Exception:
            self.logger.exception(f"Error retrying message {message.id}")
            return ProcessingOutcome.FORWARD_FAILED

        self.logger.info(
            f"Message {message.id} requeued on {self.config.topic_name} "
            f"with {RETRY_COUNT_ATTRIBUTE}={attributes[RETRY_COUNT_ATTRIBUTE]}"
        )
        return ProcessingOutcome.RETRIED

    async def _dead_letter(self, message: Message, error: BaseException) -> ProcessingOutcome:
        dead_letter_topic = self.config.dead_letter_topic
        self.logger.info(f"Sending message {message.id} to {dead_letter_topic}")

        try:
            await self.subscriber.provisioner.ensure_topic(dead_letter_topic)
            await self.subscriber.publisher.publish(
                dead_letter_topic,
                data=message.data,
                attributes={ERROR_ATTRIBUTE: describe_error(error)},
            )
        except Exception:
            self.logger.exception(f"Error sending message {message.id} to {dead_letter_topic}")
            return ProcessingOutcome.FORWARD_FAILED

        return ProcessingOutcome.DEAD_LETTERED

    def _settle(self, message: PubSubMessage, outcome: ProcessingOutcome, elapsed: float) -> None:
        extra = {"outcome": outcome.value, "elapsed": f"{elapsed:.3f}s"}

        if outcome is ProcessingOutcome.FORWARD_FAILED:
            if self.config.nack_on_forward_failure:
                self.logger.warning(
                    f"Sending nack to message {message.message_id} so it is redelivered",
                    extra=extra,
                )
                future = message.nack_with_response()
                self._wait_acknowledge_response(future=future)
                return

            self.logger.error(
                f"Message {message.message_id} could not be forwarded and will be lost",
                extra=extra,
            )

        self.logger.info(f"Sending ack to message {message.message_id}", extra=extra)
        future = message.ack_with_response()
        self._wait_acknowledge_response(future=future)

    @contextmanager
    def _contextualize(self, message: Message) -> Generator[None]:
        context = {
            "name": self.subscriber.name,
            "message_id": message.id,
            "topic_name": self.config.topic_name,
            "subscription_name": self.config.subscription_name,
            RETRY_COUNT_ATTRIBUTE: message.retry_count,
        }
        with contextualize(**context):
            yield

    def _translate_message(self, message: PubSubMessage) -> Message:
        delivery_attempt = 0
        if message.delivery_attempt is not None:
            delivery_attempt = message.delivery_attempt

        return Message(
            id=message.message_id,
            size=message.size,
            data=message.data,
            attributes=dict(message.attributes or {}),
            delivery_attempt=delivery_attempt,
        )

    def _wait_acknowledge_response(self, future: Future[Any]) -> None:
        try:
            future.result(timeout=60)
        except AcknowledgeError as e:
            self._on_acknowledge_failed(e)
        except TimeoutError:
            self.logger.error("The acknowledge response took too long. The message will be retried.")

    def _on_acknowledge_failed(self, e: AcknowledgeError) -> None:
        match e.error_code:
            case AcknowledgeStatus.PERMISSION_DENIED:
                self.logger.error(
                    "The subscriber does not have permission to ack/nack the "
                    f"message or the subscription does not exists anymore: {e}."
                )
            case AcknowledgeStatus.FAILED_PRECONDITION:
                self.logger.error(
                    "The subscription is detached or the subscriber does "
                    f"not have access to encryption keys: {e}."
                )
            case AcknowledgeStatus.INVALID_ACK_ID:
                self.logger.info("The message ack_id expired. It will be redelivered later.")
            case _:
                self.logger.critical(f"Some unknown error happened during ack/nack: {e}")
