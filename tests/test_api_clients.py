"""
Tests for the HTTP clients.

Sessions are mocked; no network access.

Tests:
- Birdeye payload parsing, fallbacks and error mapping
- Jupiter quote parsing and validation
- Leaky-bucket rate limiter
"""

import pytest
import requests
from decimal import Decimal
from unittest.mock import Mock

from config.settings import SOL_MINT, BirdeyeConfig
from src.api.birdeye import BirdeyeClient
from src.api.errors import ProviderError, ProviderTimeoutError, RateLimitError
from src.api.jupiter import JupiterQuoteClient
from src.api.rate_limiter import RequestRateLimiter


def make_response(payload=None, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.json.return_value = payload or {}
    response.text = str(payload)
    return response


def ok(data):
    return make_response({"success": True, "data": data})


class RoutingSession:
    """Mock session answering by URL path suffix."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append((url, params, headers))
        for suffix, response in self.routes.items():
            if url.endswith(suffix):
                if isinstance(response, Exception):
                    raise response
                return response
        raise AssertionError(f"Unexpected URL {url}")


def make_birdeye(routes, api_key="key"):
    limiter = RequestRateLimiter(sleep=Mock())
    session = RoutingSession(routes)
    client = BirdeyeClient(BirdeyeConfig(api_key=api_key), session=session, rate_limiter=limiter)
    return client, session


HISTORY = ok({"items": [{"value": 1.0, "volume": 10}, {"value": 1.1, "volume": 12}]})


class TestBirdeyeClient:
    """Tests for BirdeyeClient."""

    def test_market_data_from_price_endpoint(self):
        client, session = make_birdeye({
            "/v1/token/price": ok({"value": 1.2, "liquidity": 5e5, "marketCap": 1e6, "volume24h": 2e5}),
            "/v1/token/price_history": HISTORY,
        })

        market = client.fetch_market_data("A")

        assert market.price == 1.2
        assert market.liquidity == 5e5
        assert market.price_history == [1.0, 1.1]
        assert market.volume_history == [10.0, 12.0]
        assert session.calls[0][2]["X-API-KEY"] == "key"

    def test_snapshot_fills_missing_liquidity(self):
        client, _ = make_birdeye({
            "/v1/token/price": ok({"value": 1.2}),
            "/v1/token/price_history": HISTORY,
            "/defi/v3/token/market-data": ok({
                "marketCap": 3e6, "liquidity": {"usd": 4e5}, "volume24h": 9e4,
            }),
        })

        market = client.fetch_market_data("A")

        assert market.liquidity == 4e5
        assert market.market_cap == 3e6
        assert market.volume_24h == 9e4

    def test_token_metadata(self):
        client, _ = make_birdeye({
            "/v1/token/info": ok({"verified": True, "decimals": 6, "totalSupply": 1e9}),
            "/defi/token_security": ok({"top10HolderPercent": 0.35}),
        })

        metadata = client.fetch_token_metadata("A")

        assert metadata.verified
        assert metadata.decimals == 6
        assert metadata.ownership_concentration == pytest.approx(35.0)
        assert metadata.suspicious_attributes == []

    def test_suspicious_supply_and_unknown_holders(self):
        client, _ = make_birdeye({
            "/v1/token/info": ok({"verified": False, "decimals": 9, "totalSupply": 1e16}),
            "/defi/token_security": make_response(status_code=500),
        })

        metadata = client.fetch_token_metadata("A")

        assert metadata.suspicious_attributes == ["Extremely high total supply"]
        assert metadata.ownership_concentration == 100.0

    def test_missing_api_key(self):
        client, session = make_birdeye({}, api_key="")

        with pytest.raises(ProviderError):
            client.fetch_price("A")
        assert session.calls == []

    def test_rate_limit_mapped(self):
        client, _ = make_birdeye({"/v1/token/price": make_response(status_code=429)})

        with pytest.raises(RateLimitError):
            client.fetch_price("A")

    def test_timeout_mapped(self):
        client, _ = make_birdeye({"/v1/token/price": requests.Timeout()})

        with pytest.raises(ProviderTimeoutError):
            client.fetch_price("A")

    def test_unsuccessful_payload(self):
        client, _ = make_birdeye({
            "/v1/token/price": make_response({"success": False, "message": "bad token"}),
        })

        with pytest.raises(ProviderError, match="bad token"):
            client.fetch_price("A")

    @pytest.mark.asyncio
    async def test_health_check(self):
        healthy, _ = make_birdeye({"/v1/token/price": ok({"value": 150.0})})
        assert await healthy.check_health() == (True, [])

        down, _ = make_birdeye({"/v1/token/price": make_response(status_code=503)})
        valid, issues = await down.check_health()
        assert not valid
        assert issues == ["Birdeye API error: 503"]

    @pytest.mark.asyncio
    async def test_health_check_without_key(self):
        client, _ = make_birdeye({}, api_key="")
        assert await client.check_health() == (False, ["Birdeye API key not found"])


class TestJupiterQuoteClient:
    """Tests for JupiterQuoteClient."""

    def test_quote_parsed(self):
        session = Mock()
        session.get.return_value = make_response(
            {"inAmount": "1000000000", "outAmount": "123456", "routePlan": [{"swapInfo": {}}]}
        )
        client = JupiterQuoteClient(session=session)

        quote = client.fetch_quote(SOL_MINT, "A", Decimal("1000000000"), 150)

        assert quote.out_amount == Decimal("123456")
        assert quote.slippage_bps == 150
        params = session.get.call_args.kwargs["params"]
        assert params["amount"] == "1000000000"
        assert params["slippageBps"] == 150

    def test_quote_without_route_rejected(self):
        session = Mock()
        session.get.return_value = make_response({"outAmount": "1", "routePlan": []})

        with pytest.raises(ProviderError, match="Invalid quote data"):
            JupiterQuoteClient(session=session).fetch_quote(SOL_MINT, "A", Decimal("1"), 50)

    def test_http_error_is_retryable(self):
        session = Mock()
        session.get.return_value = make_response(status_code=502)

        with pytest.raises(ProviderError) as exc_info:
            JupiterQuoteClient(session=session).fetch_quote(SOL_MINT, "A", Decimal("1"), 50)
        assert exc_info.value.retryable

    def test_swap_transaction(self):
        session = Mock()
        session.post.return_value = make_response({"swapTransaction": "AQID"})
        client = JupiterQuoteClient(session=session)
        quote = Mock(raw={"outAmount": "1"})

        assert client.fetch_swap_transaction(quote, "Wallet111") == "AQID"
        assert session.post.call_args.kwargs["json"]["userPublicKey"] == "Wallet111"


class TestRequestRateLimiter:
    """Tests for the leaky-bucket limiter."""

    def test_waits_when_budget_exhausted(self):
        now = [0.0]
        sleep = Mock(side_effect=lambda s: now.__setitem__(0, now[0] + s))
        limiter = RequestRateLimiter(
            max_counter=5, decay_rate=1.0, buffer=0.8, clock=lambda: now[0], sleep=sleep
        )

        waits = [limiter.acquire() for _ in range(5)]

        assert waits[:4] == [0.0] * 4
        assert waits[4] == pytest.approx(1.0)

    def test_budget_decays(self):
        now = [0.0]
        limiter = RequestRateLimiter(max_counter=5, clock=lambda: now[0], sleep=Mock())
        for _ in range(4):
            limiter.acquire()

        now[0] += 2.0

        assert limiter.current_counter == pytest.approx(2.0)

    def test_min_delay(self):
        sleep = Mock()
        limiter = RequestRateLimiter(min_delay=0.2, sleep=sleep)

        limiter.acquire()

        sleep.assert_called_once_with(0.2)
