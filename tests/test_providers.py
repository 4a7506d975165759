"""Tests for delivery providers."""

import asyncio
import random
from unittest.mock import MagicMock

import pytest
from aiohttp import web
from aiohttp import test_utils

from maildispatch.config.settings import DispatchSettings
from maildispatch.providers import (
    DeliveryError, HttpProvider, SimulatedProvider, build_providers,
)


class TestSimulatedProvider:

    @pytest.mark.asyncio
    async def test_always_succeeds_at_rate_one(self, make_message):
        provider = SimulatedProvider("ProviderA", success_rate=1.0)
        for i in range(20):
            await provider.send(make_message(f"e{i}"))
        assert provider.get_stats() == {"provider": "ProviderA", "calls": 20, "errors": 0}

    @pytest.mark.asyncio
    async def test_always_fails_at_rate_zero(self, make_message):
        provider = SimulatedProvider("ProviderA", success_rate=0.0)
        with pytest.raises(DeliveryError, match="ProviderA failed: simulated failure"):
            await provider.send(make_message())
        assert provider.get_stats()["errors"] == 1

    @pytest.mark.asyncio
    async def test_uses_injected_rng(self, make_message):
        rng = MagicMock(spec=random.Random)
        rng.random.side_effect = [0.69, 0.7]
        provider = SimulatedProvider("ProviderA", success_rate=0.7, rng=rng)

        await provider.send(make_message("e1"))
        with pytest.raises(DeliveryError):
            await provider.send(make_message("e2"))

    @pytest.mark.parametrize("rate", [-0.1, 1.5])
    def test_invalid_success_rate(self, rate):
        with pytest.raises(ValueError):
            SimulatedProvider("ProviderA", success_rate=rate)

    def test_repr(self):
        assert repr(SimulatedProvider("ProviderA")) == "SimulatedProvider(name='ProviderA')"


async def start_relay(handler):
    app = web.Application()
    app.router.add_post("/send", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    return server


class TestHttpProvider:

    @pytest.mark.asyncio
    async def test_posts_message_json(self, make_message):
        received = []

        async def handler(request):
            received.append(await request.json())
            return web.json_response({"ok": True})

        server = await start_relay(handler)
        provider = HttpProvider("Relay", str(server.make_url("/send")))
        try:
            await provider.send(make_message())
        finally:
            await provider.close()
            await server.close()

        assert received == [
            {"id": "e1", "to": "user@example.com", "subject": "Hi", "body": "Hello"}
        ]

    @pytest.mark.asyncio
    async def test_error_status_is_delivery_error(self, make_message):
        async def handler(request):
            return web.Response(status=503, text="unavailable")

        server = await start_relay(handler)
        provider = HttpProvider("Relay", str(server.make_url("/send")))
        try:
            with pytest.raises(DeliveryError, match="HTTP 503: unavailable"):
                await provider.send(make_message())
        finally:
            await provider.close()
            await server.close()

        assert provider.get_stats()["errors"] == 1

    @pytest.mark.asyncio
    async def test_timeout_is_delivery_error(self, make_message):
        async def handler(request):
            await asyncio.sleep(0.5)
            return web.json_response({"ok": True})

        server = await start_relay(handler)
        provider = HttpProvider("Relay", str(server.make_url("/send")), timeout_seconds=0.05)
        try:
            with pytest.raises(DeliveryError):
                await provider.send(make_message())
        finally:
            await provider.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_connection_refused_is_delivery_error(self, make_message):
        async def handler(request):
            return web.Response()

        server = await start_relay(handler)
        url = str(server.make_url("/send"))
        await server.close()

        provider = HttpProvider("Relay", url, timeout_seconds=1.0)
        try:
            with pytest.raises(DeliveryError):
                await provider.send(make_message())
        finally:
            await provider.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        provider = HttpProvider("Relay", "http://127.0.0.1:1/send")
        await provider.close()
        await provider.close()
        assert provider.endpoint == "http://127.0.0.1:1/send"


class TestBuildProviders:

    def test_defaults_are_simulated(self):
        providers = build_providers(DispatchSettings(_env_file=None))
        assert [p.name for p in providers] == ["ProviderA", "ProviderB"]
        assert [p.success_rate for p in providers] == [0.7, 0.9]

    def test_endpoint_selects_http(self):
        settings = DispatchSettings(
            _env_file=None,
            provider_names=["Relay", "Backup"],
            provider_endpoints={"Relay": "http://relay:9000/send"},
            provider_timeout_seconds=3.0,
        )
        relay, backup = build_providers(settings)

        assert isinstance(relay, HttpProvider)
        assert relay.endpoint == "http://relay:9000/send"
        assert isinstance(backup, SimulatedProvider)
        assert backup.success_rate == 1.0
