from concurrent.futures import Future
from unittest.mock import MagicMock

import pytest
from google.cloud.pubsub_v1.subscriber.exceptions import AcknowledgeStatus
from pydantic import BaseModel

from retrypubsub.clients.pubsub import PubSubClient
from retrypubsub.datastructures import SubscriberConfig
from retrypubsub.pubsub.subscriber import Subscriber


class Order(BaseModel):
    order_id: str
    quantity: int


@pytest.fixture
def pubsub_client() -> MagicMock:
    client = MagicMock(spec=PubSubClient)
    client.project_id = "test-project"
    client.topic_path.side_effect = lambda name: f"projects/test-project/topics/{name}"
    client.subscription_path.side_effect = (
        lambda name: f"projects/test-project/subscriptions/{name}"
    )
    client.topic_exists.return_value = True
    client.subscription_exists.return_value = True
    client.publish.return_value = "published-id"
    return client


@pytest.fixture
def config() -> SubscriberConfig:
    return SubscriberConfig(
        project_id="test-project",
        topic_name="orders",
        subscription_name="orders-worker",
        payload_type=Order,
        max_retries=2,
    )


@pytest.fixture
def received() -> list[Order]:
    return []


@pytest.fixture
def subscriber_factory(pubsub_client: MagicMock, config: SubscriberConfig):
    def factory(handler, **overrides) -> Subscriber[Order]:
        subscriber_config = config
        if overrides:
            values = {
                "project_id": config.project_id,
                "topic_name": config.topic_name,
                "subscription_name": config.subscription_name,
                "payload_type": config.payload_type,
                "max_retries": config.max_retries,
                **overrides,
            }
            subscriber_config = SubscriberConfig(**values)

        return Subscriber(handler, subscriber_config, client=pubsub_client)

    return factory


def make_pubsub_message(
    data: bytes, attributes: dict[str, str] | None = None, message_id: str = "message-1"
) -> MagicMock:
    acknowledged: Future[AcknowledgeStatus] = Future()
    acknowledged.set_result(AcknowledgeStatus.SUCCESS)

    message = MagicMock()
    message.message_id = message_id
    message.data = data
    message.size = len(data)
    message.attributes = {} if attributes is None else attributes
    message.delivery_attempt = None
    message.ack_with_response.return_value = acknowledged
    message.nack_with_response.return_value = acknowledged
    return message
