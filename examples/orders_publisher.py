import asyncio

from pydantic import BaseModel

from retrypubsub import PubSubClient, Publisher


class Order(BaseModel):
    order_id: str
    quantity: int


async def main() -> None:
    publisher = Publisher(PubSubClient(project_id="retrypubsub-pubsub-local"))

    await publisher.publish("orders", Order(order_id="o-1", quantity=2), autocreate=True)
    await publisher.publish("orders", {"order_id": "o-2", "quantity": 500})
    await publisher.publish("orders", b"not-json")


if __name__ == "__main__":
    asyncio.run(main())
