"""Publisher logic."""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, InstanceOf, validate_call

from retrypubsub.clients.pubsub import PubSubClient
from retrypubsub.exceptions import SerializationError
from retrypubsub.provisioner import PubSubProvisioner


class Publisher:
    def __init__(self, client: PubSubClient, provisioner: PubSubProvisioner | None = None):
        self.client = client
        self.provisioner = provisioner or PubSubProvisioner(client)

    @validate_call(config=ConfigDict(strict=True))
    async def publish(
        self,
        topic_name: str,
        data: InstanceOf[BaseModel] | dict[str, Any] | list[Any] | str | bytes,
        attributes: dict[str, str] | None = None,
        autocreate: bool = False,
    ) -> str:
        serialized_message = self._serialize_message(data)

        if autocreate:
            await self.provisioner.ensure_topic(topic_name)

        return await self.client.publish(
            topic_name, data=serialized_message, attributes=dict(attributes or {})
        )

    def _serialize_message(self, data: Any) -> bytes:
        if isinstance(data, bytes):
            return data

        if isinstance(data, str):
            return data.encode(encoding="utf-8")

        if isinstance(data, dict | list):
            try:
                json_data = json.dumps(data, indent=None, separators=(",", ":"))
            except (TypeError, ValueError) as e:
                raise SerializationError(f"The message {data} is not JSON serializable: {e}") from e
            return json_data.encode(encoding="utf-8")

        if isinstance(data, BaseModel):
            json_data = data.model_dump_json(indent=None)
            return json_data.encode(encoding="utf-8")

        raise SerializationError(
            f"The message {data} is not serializable. "
            "Please send as one of the following formats: BaseModel, dict, list, str or bytes."
        )
