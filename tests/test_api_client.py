import logging

import httpx
import pytest

from api.client import TaoStatsAPIClient, TaoStatsAPIError
from api.endpoints import DelegationsEndpoints, LiveEndpoints, TaoPricesEndpoints
from config import ClientConfig
from taostats_client import TaoStatsClient, _suppress_filter, configure_logging


class Recorder:
    """MockTransport handler replaying a queue of responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


def make_client(recorder, api_key="secret", retries=3):
    config = ClientConfig(api_key=api_key, base_url="https://api.test", retries=retries)
    return TaoStatsAPIClient(config, transport=httpx.MockTransport(recorder), backoff_factor=0)


async def test_get_sends_auth_and_drops_empty_params():
    recorder = Recorder(httpx.Response(200, json={"data": [{"netuid": 1}]}))
    client = make_client(recorder)

    response = await client.get("/api/subnet/latest/v1", {"netuid": 1, "page": None})

    request = recorder.requests[0]
    assert request.headers["Authorization"] == "secret"
    assert request.headers["accept"] == "application/json"
    assert dict(request.url.params) == {"netuid": "1"}
    assert response.success and response.status_code == 200
    assert response.paginated().data == [{"netuid": 1}]


async def test_server_errors_are_retried():
    recorder = Recorder(
        httpx.Response(502, json={"message": "bad gateway"}),
        httpx.Response(503),
        httpx.Response(200, json={"ok": True}),
    )
    client = make_client(recorder)

    response = await client.get("/api/stats/latest/v1")

    assert response.data == {"ok": True}
    assert len(recorder.requests) == 3


async def test_client_errors_fail_immediately():
    recorder = Recorder(httpx.Response(404, json={"message": "Subnet not found"}))
    client = make_client(recorder)

    with pytest.raises(TaoStatsAPIError) as exc:
        await client.get("/api/subnet/latest/v1", {"netuid": 999})

    assert exc.value.status_code == 404
    assert exc.value.message == "Subnet not found"
    assert exc.value.response == {"message": "Subnet not found"}
    assert len(recorder.requests) == 1


async def test_retries_are_bounded():
    recorder = Recorder(httpx.Response(500, json={"error": "boom"}))
    client = make_client(recorder, retries=2)

    with pytest.raises(TaoStatsAPIError) as exc:
        await client.get("/api/block/v1")

    assert exc.value.status_code == 500
    assert str(exc.value) == "boom"
    assert len(recorder.requests) == 3


async def test_network_error_has_no_status():
    recorder = Recorder(httpx.ConnectError("refused"))
    client = make_client(recorder, retries=0)

    with pytest.raises(TaoStatsAPIError) as exc:
        await client.get("/api/block/v1")

    assert exc.value.status_code is None
    assert exc.value.message.startswith("Network error: No response received")


async def test_api_key_required_except_for_status():
    recorder = Recorder(httpx.Response(200, json={"status": "ok"}))
    client = make_client(recorder, api_key=None)

    with pytest.raises(TaoStatsAPIError, match="API key is required"):
        await client.get("/api/subnet/latest/v1")
    assert recorder.requests == []

    response = await client.get("/api/status/v1")
    assert response.data == {"status": "ok"}
    assert "Authorization" not in recorder.requests[0].headers


async def test_endpoint_defaults_can_be_overridden():
    recorder = Recorder(httpx.Response(200, json={}))
    http = make_client(recorder)

    await DelegationsEndpoints(http).get_slippage({"netuid": 3, "input_tokens": 10})
    await DelegationsEndpoints(http).get_slippage({"netuid": 3, "direction": "alpha_to_tao"})
    await TaoPricesEndpoints(http).get_tao_price_ohlc({"period": "1h"})

    slippage, reverse, ohlc = (dict(r.url.params) for r in recorder.requests)
    assert slippage["direction"] == "tao_to_alpha"
    assert reverse["direction"] == "alpha_to_tao"
    assert ohlc == {"asset": "tao", "period": "1h"}


async def test_live_paths_embed_arguments():
    recorder = Recorder(httpx.Response(200, json={}))
    live = LiveEndpoints(make_client(recorder))

    await live.get_free_tao_balance("5Abc")
    await live.get_extrinsics_for_block_range(10, 20)

    assert recorder.requests[0].url.path == "/api/v1/live/accounts/5Abc/balance-info"
    assert recorder.requests[1].url.path == "/api/v1/live/blocks"
    assert dict(recorder.requests[1].url.params) == {"block_start": "10", "block_end": "20"}


async def test_client_health_works_without_key():
    recorder = Recorder(httpx.Response(200, json={"status": "ok"}))
    config = ClientConfig(base_url="https://api.test")
    http = TaoStatsAPIClient(config, transport=httpx.MockTransport(recorder), backoff_factor=0)

    async with TaoStatsClient(config=config, http=http) as client:
        health = await client.get_health()

    assert health.success
    assert recorder.requests[0].url.path == "/api/status/v1"
    assert not client.connection.is_connected


async def test_client_sets_up_logging_once():
    recorder = Recorder(httpx.Response(200, json={}))
    config = ClientConfig(base_url="https://api.test")
    http = TaoStatsAPIClient(config, transport=httpx.MockTransport(recorder), backoff_factor=0)

    async with TaoStatsClient(config=config, http=http, log_level="warning"):
        pass
    configure_logging("WARNING")

    assert logging.getLogger("taostats_api_client").level == logging.WARNING
    filters = logging.getLogger("scalecodec").filters
    assert filters.count(_suppress_filter) == 1
    noisy = logging.LogRecord(
        "scalecodec", logging.DEBUG, __file__, 1,
        "Adding PortableRegistry from metadata to type registry", None, None,
    )
    assert not _suppress_filter.filter(noisy)
