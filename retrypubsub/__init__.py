"""A Pub/Sub subscriber with counted retries and dead-letter topics"""

from retrypubsub.clients.pubsub import PubSubClient
from retrypubsub.datastructures import Message, ProcessingOutcome, SubscriberConfig
from retrypubsub.exceptions import Drop, Retry, RetryPubSubException
from retrypubsub.provisioner import PubSubProvisioner
from retrypubsub.pubsub.publisher import Publisher
from retrypubsub.pubsub.subscriber import Subscriber

__all__ = [
    "Subscriber",
    "SubscriberConfig",
    "Publisher",
    "PubSubClient",
    "PubSubProvisioner",
    "Message",
    "ProcessingOutcome",
    "Retry",
    "Drop",
    "RetryPubSubException",
]
