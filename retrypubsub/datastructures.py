from dataclasses import dataclass, field
from enum import StrEnum

from retrypubsub.exceptions import RetryPubSubException

RETRY_COUNT_ATTRIBUTE = "retries"
ERROR_ATTRIBUTE = "error"
DEAD_LETTER_SUFFIX = "_dlq"

MIN_ACK_DEADLINE_SECONDS = 10
MAX_ACK_DEADLINE_SECONDS = 600


@dataclass(frozen=True)
class Message:
    id: str
    size: int
    data: bytes
    attributes: dict[str, str] = field(default_factory=dict)
    delivery_attempt: int = 0

    @property
    def retry_count(self) -> int:
        """The application retry counter carried on the attributes.

        Missing, unparsable or negative values are read as zero.
        """
        value = self.attributes.get(RETRY_COUNT_ATTRIBUTE)
        if value is None:
            return 0

        try:
            retries = int(value)
        except (TypeError, ValueError):
            return 0

        return max(retries, 0)


class ProcessingOutcome(StrEnum):
    """The final state reached by a single delivery."""

    SUCCEEDED = "succeeded"
    DROPPED = "dropped"
    RETRIED = "retried"
    DEAD_LETTERED = "dead_lettered"
    FORWARD_FAILED = "forward_failed"


@dataclass(frozen=True)
class SubscriberConfig:
    project_id: str
    topic_name: str
    subscription_name: str
    payload_type: type
    max_retries: int = 5
    max_messages: int | None = None
    ack_deadline_seconds: int = 10
    max_lease_duration_seconds: int = 3600
    nack_on_forward_failure: bool = False

    def __post_init__(self) -> None:
        for name in ("project_id", "topic_name", "subscription_name"):
            value = getattr(self, name)
            if not (value and isinstance(value, str) and value.strip()):
                raise RetryPubSubException(f"The {name} value ({value!r}) is invalid.")

        if self.max_retries < 0:
            raise RetryPubSubException(
                f"The max_retries must be zero or positive, got {self.max_retries}."
            )

        if self.max_messages is not None and self.max_messages <= 0:
            raise RetryPubSubException(
                f"The max_messages must be positive, got {self.max_messages}."
            )

        if not MIN_ACK_DEADLINE_SECONDS <= self.ack_deadline_seconds <= MAX_ACK_DEADLINE_SECONDS:
            raise RetryPubSubException(
                "The ack_deadline_seconds must be between "
                f"{MIN_ACK_DEADLINE_SECONDS} and {MAX_ACK_DEADLINE_SECONDS} seconds, "
                f"got {self.ack_deadline_seconds}."
            )

        if self.max_lease_duration_seconds < self.ack_deadline_seconds:
            raise RetryPubSubException(
                "The max_lease_duration_seconds can not be lower than the ack_deadline_seconds."
            )

    @property
    def dead_letter_topic(self) -> str:
        return f"{self.topic_name}{DEAD_LETTER_SUFFIX}"
