from __future__ import annotations


class DeliveryError(RuntimeError):
    """Raised when an email or SMS could not be handed to the provider."""

    def __init__(self, channel: str, message: str) -> None:
        super().__init__(message)
        self.channel = channel
