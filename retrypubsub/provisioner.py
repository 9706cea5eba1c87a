import threading

from retrypubsub.clients.pubsub import PubSubClient
from retrypubsub.exceptions import ProvisioningError
from retrypubsub.logger import logger


class PubSubProvisioner:
    """Creates topics and subscriptions when they are absent.

    Concurrent provisioners may both see a resource as missing; the
    creation call treats an 'already exists' answer as success.
    """

    def __init__(self, client: PubSubClient) -> None:
        self.client = client
        self.ensured_topics: set[str] = set()
        self._lock = threading.Lock()

    async def ensure_subscription(
        self, subscription_name: str, topic_name: str, ack_deadline_seconds: int
    ) -> str:
        try:
            if await self.client.subscription_exists(subscription_name):
                logger.debug(f"The subscription '{subscription_name}' already exists.")
                return self.client.subscription_path(subscription_name)
        except Exception as e:
            raise ProvisioningError(
                f"Could not check if the subscription '{subscription_name}' exists: {e}"
            ) from e

        await self.ensure_topic(topic_name)

        try:
            return await self.client.create_subscription(
                subscription_name=subscription_name,
                topic_name=topic_name,
                ack_deadline_seconds=ack_deadline_seconds,
            )
        except Exception as e:
            raise ProvisioningError(
                f"Could not create the subscription '{subscription_name}' "
                f"for topic '{topic_name}': {e}"
            ) from e

    async def ensure_topic(self, topic_name: str) -> str:
        with self._lock:
            if topic_name in self.ensured_topics:
                return self.client.topic_path(topic_name)

        try:
            if not await self.client.topic_exists(topic_name):
                await self.client.create_topic(topic_name)
        except Exception as e:
            raise ProvisioningError(f"Could not create the topic '{topic_name}': {e}") from e

        with self._lock:
            self.ensured_topics.add(topic_name)

        return self.client.topic_path(topic_name)
