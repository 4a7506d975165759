"""Email delivery providers."""

from maildispatch.config.settings import DispatchSettings

from .base import BaseProvider, DeliveryError
from .http import HttpProvider
from .simulated import SimulatedProvider


def build_providers(settings: DispatchSettings) -> list[BaseProvider]:
    """Build the provider chain in priority order.

    A name with an entry in ``provider_endpoints`` is delivered over HTTP;
    any other name gets a simulated provider using its configured success
    rate (default 1.0).
    """
    providers: list[BaseProvider] = []
    for name in settings.provider_names:
        endpoint = settings.provider_endpoints.get(name)
        if endpoint:
            providers.append(
                HttpProvider(name, endpoint, timeout_seconds=settings.provider_timeout_seconds)
            )
        else:
            providers.append(
                SimulatedProvider(name, settings.provider_success_rates.get(name, 1.0))
            )
    return providers


__all__ = [
    "BaseProvider",
    "DeliveryError",
    "HttpProvider",
    "SimulatedProvider",
    "build_providers",
]
