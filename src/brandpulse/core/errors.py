"""
Error taxonomy for the batch engine.

Intake errors are raised to the caller of the normalizer. Provider errors and
PayloadLostError are caught at the single-item boundary and recorded on the item.
"""


class BrandPulseError(Exception):
    """Base class for all engine errors."""


class IntakeError(BrandPulseError):
    """An input image could not be turned into a batch item."""


class InvalidInputError(IntakeError):
    """The input does not declare an image content type."""


class DecodeError(IntakeError):
    """The input declared an image type but could not be decoded."""


class PayloadLostError(BrandPulseError):
    """The encoded payload for an item is missing from the payload store."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__("Image data lost")


class ProviderError(BrandPulseError):
    """The analysis provider could not produce a usable result."""


class MalformedResponseError(ProviderError):
    """The provider response was empty or did not match the response schema."""


class TransportError(ProviderError):
    """The provider was unreachable, timed out or rejected the request."""
