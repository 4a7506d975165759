"""Simulated provider -- succeeds with a fixed probability.

Used when no endpoint is configured for a provider name, so the service can
run end to end without a real email backend.
"""

import random
from typing import Optional

from maildispatch.models import Message

from .base import BaseProvider, DeliveryError


class SimulatedProvider(BaseProvider):
    """Provider whose attempts succeed with probability ``success_rate``."""

    def __init__(self, name: str, success_rate: float = 1.0,
                 rng: Optional[random.Random] = None):
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError(f"success_rate must be within [0, 1], got {success_rate}")
        super().__init__(name)
        self.success_rate = success_rate
        self._rng = rng or random.Random()

    async def _deliver(self, message: Message) -> None:
        if self._rng.random() < self.success_rate:
            return
        raise DeliveryError(self.name, "simulated failure")
