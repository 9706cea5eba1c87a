from dataclasses import dataclass
from typing import Any
from unittest.mock import MagicMock

import pytest
from google.cloud.pubsub_v1.types import FlowControl

from retrypubsub.clients.handlers import CallbackHandler
from retrypubsub.datastructures import SubscriberConfig
from retrypubsub.exceptions import DeserializationError, ProvisioningError, SerializationError
from retrypubsub.pubsub.subscriber import Subscriber
from tests.conftest import Order


async def process_order(order: Order) -> None:
    pass


@dataclass
class Event:
    name: str
    payload: dict[str, Any]


class TestSubscriberCreation:
    def test_handler_must_be_async(self, config: SubscriberConfig, pubsub_client: MagicMock):
        def sync_handler(order: Order) -> None:
            pass

        with pytest.raises(TypeError):
            Subscriber(sync_handler, config, client=pubsub_client)

    def test_handler_must_be_a_function(
        self, config: SubscriberConfig, pubsub_client: MagicMock
    ):
        with pytest.raises(TypeError):
            Subscriber("not-a-function", config, client=pubsub_client)

    def test_subscriber_name(self, subscriber_factory):
        subscriber = subscriber_factory(process_order)
        assert subscriber.name == "process_order"

    def test_publisher_shares_the_client(self, subscriber_factory, pubsub_client: MagicMock):
        subscriber = subscriber_factory(process_order)

        assert subscriber.publisher.client is pubsub_client
        assert subscriber.publisher.provisioner is subscriber.provisioner

    def test_default_flow_control_keeps_transport_defaults(self, subscriber_factory):
        subscriber = subscriber_factory(process_order)

        flow_control = subscriber.flow_control

        assert flow_control.max_messages == FlowControl().max_messages
        assert flow_control.max_lease_duration == 3600

    def test_flow_control_with_max_messages(self, subscriber_factory):
        subscriber = subscriber_factory(process_order, max_messages=5)

        assert subscriber.flow_control.max_messages == 5


class TestSubscriberSerialization:
    def test_deserialize_pydantic_model(self, subscriber_factory):
        subscriber = subscriber_factory(process_order)

        order = subscriber.deserialize(b'{"order_id": "o-1", "quantity": 1}')

        assert order == Order(order_id="o-1", quantity=1)

    def test_deserialize_invalid_payload_raises_exception(self, subscriber_factory):
        subscriber = subscriber_factory(process_order)

        with pytest.raises(DeserializationError):
            subscriber.deserialize(b'{"order_id": "o-1"}')

    @pytest.mark.parametrize(
        ["payload_type", "data", "expected"],
        [
            [dict, b'{"a": 1}', {"a": 1}],
            [str, b'"hello"', "hello"],
            [list[int], b"[1, 2]", [1, 2]],
            [Event, b'{"name": "created", "payload": {}}', Event(name="created", payload={})],
        ],
    )
    def test_deserialize_other_payload_types(
        self, pubsub_client: MagicMock, payload_type: type, data: bytes, expected: Any
    ):
        config = SubscriberConfig(
            project_id="p", topic_name="t", subscription_name="s", payload_type=payload_type
        )
        subscriber = Subscriber(process_order, config, client=pubsub_client)

        assert subscriber.deserialize(data) == expected

    def test_plain_text_does_not_match_string_payload(self, pubsub_client: MagicMock):
        config = SubscriberConfig(
            project_id="p", topic_name="t", subscription_name="s", payload_type=str
        )
        subscriber = Subscriber(process_order, config, client=pubsub_client)

        with pytest.raises(DeserializationError):
            subscriber.deserialize(b"hello")

    def test_serialize_is_compact_json(self, subscriber_factory):
        subscriber = subscriber_factory(process_order)

        data = subscriber.serialize(Order(order_id="o-1", quantity=1))

        assert data == b'{"order_id":"o-1","quantity":1}'

    def test_serialize_failure_raises_exception(self, pubsub_client: MagicMock):
        config = SubscriberConfig(
            project_id="p", topic_name="t", subscription_name="s", payload_type=Any
        )
        subscriber = Subscriber(process_order, config, client=pubsub_client)

        with pytest.raises(SerializationError):
            subscriber.serialize(object())


class TestSubscriberRun:
    def test_run_provisions_and_subscribes(self, subscriber_factory, pubsub_client: MagicMock):
        pubsub_client.subscription_exists.return_value = False
        pubsub_client.topic_exists.return_value = False
        subscriber = subscriber_factory(process_order)

        subscriber.run()

        pubsub_client.create_topic.assert_awaited_once_with("orders")
        pubsub_client.create_subscription.assert_awaited_once_with(
            subscription_name="orders-worker", topic_name="orders", ack_deadline_seconds=10
        )
        pubsub_client.subscribe.assert_called_once()
        args, kwargs = pubsub_client.subscribe.call_args
        assert args == ("orders-worker",)
        assert isinstance(kwargs["callback"].__self__, CallbackHandler)
        assert kwargs["flow_control"] == subscriber.flow_control
        assert not subscriber.running

    def test_run_fails_closed_on_provisioning_error(
        self, subscriber_factory, pubsub_client: MagicMock
    ):
        pubsub_client.subscription_exists.side_effect = RuntimeError("permission denied")
        subscriber = subscriber_factory(process_order)

        with pytest.raises(ProvisioningError):
            subscriber.run()

        pubsub_client.subscribe.assert_not_called()

    def test_shutdown_cancels_the_streaming_pull(self, subscriber_factory):
        subscriber = subscriber_factory(process_order)
        future = MagicMock()
        future.done.return_value = False
        subscriber._future = future

        assert subscriber.running
        subscriber.shutdown()

        future.cancel.assert_called_once()

    def test_shutdown_requested_while_starting_cancels_the_streaming_pull(
        self, subscriber_factory, pubsub_client: MagicMock
    ):
        subscriber = subscriber_factory(process_order)
        future = MagicMock()

        def enter(*args: Any) -> MagicMock:
            subscriber.shutdown()
            return future

        pubsub_client.subscribe.return_value.__enter__.side_effect = enter

        subscriber.run()

        future.cancel.assert_called_once()

    def test_shutdown_before_run_is_a_noop(self, subscriber_factory):
        subscriber = subscriber_factory(process_order)
        subscriber.shutdown()
        assert not subscriber.running
