from pydantic import BaseModel

from retrypubsub import Drop, Retry, Subscriber, SubscriberConfig
from retrypubsub.logger import logger


class Order(BaseModel):
    order_id: str
    quantity: int


async def process_order(order: Order) -> None:
    if order.quantity <= 0:
        logger.info(f"Ignoring empty order {order.order_id}")
        raise Drop()

    if order.quantity > 100:
        raise Retry(f"Not enough stock for order {order.order_id}")

    logger.info(f"Processed order {order.order_id}")


config = SubscriberConfig(
    project_id="retrypubsub-pubsub-local",
    topic_name="orders",
    subscription_name="orders-worker",
    payload_type=Order,
    max_retries=3,
    max_messages=10,
)
subscriber = Subscriber(process_order, config)


# retrypubsub run examples.orders_subscriber:subscriber
if __name__ == "__main__":
    subscriber.run()
