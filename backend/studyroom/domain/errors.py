from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .services import Rejection


class DomainError(Exception):
    pass


class BookingRejectedError(DomainError):
    """Raised by the use case layer when the validator rejects a request."""

    def __init__(self, rejection: "Rejection") -> None:
        super().__init__(rejection.message)
        self.rejection = rejection


class StoreError(Exception):
    """The reservation store failed (network, backend). Not a business rule."""
