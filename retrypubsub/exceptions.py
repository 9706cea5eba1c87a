class RetryPubSubException(Exception):
    """Base exception for the library errors."""


class RetryPubSubCLIException(RetryPubSubException):
    """Raised when the command line is misused."""


class ProvisioningError(RetryPubSubException):
    """A topic or subscription could not be checked or created."""


class PublishError(RetryPubSubException):
    """The transport refused to accept a published message."""


class SerializationError(RetryPubSubException):
    """The payload could not be converted to bytes."""


class DeserializationError(RetryPubSubException):
    """The message body does not match the subscriber payload type."""


class TransportError(RetryPubSubException):
    """The streaming pull stopped because of a non-recoverable error."""


class Retry(Exception):
    """Raised by a handler to request a counted retry of the message.

    Once the retry budget of the subscriber is exhausted the message is
    sent to the dead-letter topic instead.
    """


class Drop(Exception):
    """Raised by a handler to acknowledge the message without further processing."""
