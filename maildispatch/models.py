"""
maildispatch -- Message model.

The unit of work submitted for delivery.  Identity is ``id`` alone; the
dispatch core never looks at the other fields, it only hands the message
to a provider.

Field presence is enforced here, at the boundary, so the core can assume
well-formed input.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

REQUIRED_FIELDS: tuple[str, ...] = ("id", "to", "subject", "body")


class Message(BaseModel):
    """An email to dispatch.

    Field semantics:
        id:
            Client-chosen idempotency key.  Two submissions with the same
            id are the same message; only the first is ever delivered.

        to:
            Destination address.  Opaque to the core.

        subject, body:
            Message content.  Opaque to the core.
    """

    id: str = Field(min_length=1, description="Idempotency key.")
    to: str = Field(min_length=1, description="Destination address.")
    subject: str = Field(min_length=1)
    body: str = Field(min_length=1)

    model_config = {
        "frozen": True,
        "extra": "ignore",
        "str_strip_whitespace": False,
        # JSON clients may send numeric ids
        "coerce_numbers_to_str": True,
    }

    @property
    def destination(self) -> str:
        return self.to

    @property
    def payload(self) -> str:
        return self.body

    def to_wire(self) -> dict[str, Any]:
        """JSON body sent to HTTP providers."""
        return self.model_dump()
