"""
Tests for the CryptoPanic news client and TAAPI indicators.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

import config
from services.news_cryptopanic import CryptoPanicClient
from services.taapi import TaapiClient, rsi_zone


def response(status=200, payload=None):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return resp


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("services.news_cryptopanic.time.sleep"), patch("services.taapi.time.sleep") as s:
        yield s


class TestCryptoPanic:
    def test_news_page(self):
        client = CryptoPanicClient("tok", "https://cp.test/api/v1/", delay=0)
        payload = {"count": 1, "next": None, "results": [{"title": "BTC up"}]}
        with patch("services.news_cryptopanic.requests.get", return_value=response(200, payload)) as get:
            page = client.get_news(["BTC", "ETH"], kind="news")

        assert page == {"count": 1, "next": None, "previous": None, "results": [{"title": "BTC up"}]}
        params = get.call_args.kwargs["params"]
        assert get.call_args.args[0] == "https://cp.test/api/v1/posts/"
        assert params["auth_token"] == "tok"
        assert params["currencies"] == "BTC,ETH"
        assert params["filter"] == "hot"

    def test_public_without_token(self):
        client = CryptoPanicClient("", "https://cp.test/api/v1", delay=0)
        with patch("services.news_cryptopanic.requests.get", return_value=response(200, {})) as get:
            client.get_news()
        assert "auth_token" not in get.call_args.kwargs["params"]

    def test_coin_news_uppercases_and_degrades(self):
        client = CryptoPanicClient("tok", "https://cp.test/api/v1", delay=0)
        with patch("services.news_cryptopanic.requests.get",
                   return_value=response(200, {"results": [{"id": 1}]})) as get:
            assert client.get_coin_news("btc") == [{"id": 1}]
        assert get.call_args.kwargs["params"]["currencies"] == "BTC"

        with patch("services.news_cryptopanic.requests.get", return_value=response(403)):
            assert client.get_coin_news("btc") == []
        with patch("services.news_cryptopanic.requests.get",
                   side_effect=requests.ConnectionError("offline")):
            assert client.get_coin_news("btc") == []

    def test_extract_tickers(self):
        post = {"currencies": [{"code": "BTC"}, {"code": ""}, {"code": "ETH"}]}
        assert CryptoPanicClient.extract_tickers(post) == ["BTC", "ETH"]
        assert CryptoPanicClient.extract_tickers({}) == []


def taapi_payload(url, params, **kwargs):
    endpoint = url.rsplit("/", 1)[-1]
    if endpoint == "rsi":
        return response(200, {"value": 72.5})
    if endpoint == "macd":
        return response(200, {"valueMACD": 1.0, "valueMACDSignal": 0.5, "valueMACDHist": 0.5})
    if endpoint == "bbands":
        return response(200, {"valueUpperBand": 3, "valueMiddleBand": 2, "valueLowerBand": 1})
    return response(200, {"value": float(params["period"])})


class TestTaapi:
    def test_full_indicator_set(self):
        client = TaapiClient("secret", "https://taapi.test")
        with patch("services.taapi.requests.get", side_effect=taapi_payload) as get:
            ind = client.get_technical_indicators("BTC/USDT")

        assert ind["rsi"] == 72.5
        assert ind["macd"] == {"macd": 1.0, "signal": 0.5, "histogram": 0.5}
        assert ind["bollinger_bands"] == {"upper": 3, "middle": 2, "lower": 1}
        assert ind["moving_averages"] == {
            "sma_20": 20.0, "sma_50": 50.0, "sma_200": 200.0, "ema_20": 20.0, "ema_50": 50.0,
        }
        assert get.call_args.kwargs["params"]["secret"] == "secret"

    def test_no_key_means_unavailable(self):
        with patch("services.taapi.requests.get") as get:
            assert TaapiClient("", "https://taapi.test").get_technical_indicators("BTC/USDT") is None
        get.assert_not_called()

    def test_partial_response_means_unavailable(self):
        client = TaapiClient("secret", "https://taapi.test")
        with patch("services.taapi.requests.get", return_value=response(200, {"value": 50})):
            assert client.get_technical_indicators("BTC/USDT") is None

    def test_rate_limit_retried_once(self, no_sleep):
        client = TaapiClient("secret", "https://taapi.test")
        with patch("services.taapi.requests.get",
                   side_effect=[response(429), response(200, {"value": 41.0})]):
            assert client.get_rsi("ETH/USDT") == 41.0
        no_sleep.assert_any_call(15)

    def test_http_error(self):
        client = TaapiClient("secret", "https://taapi.test")
        with patch("services.taapi.requests.get", return_value=response(500)):
            assert client.get_rsi("ETH/USDT") is None

    @pytest.mark.parametrize("value,zone", [
        (None, "unavailable"), (75, "overbought"), (70, "overbought"),
        (50, "neutral"), (30, "oversold"), (12.3, "oversold"),
    ])
    def test_rsi_zone(self, value, zone):
        assert rsi_zone(value) == zone

    def test_rsi_zone_thresholds_follow_config(self):
        assert rsi_zone(config.RSI_OVERBOUGHT) == "overbought"
        assert rsi_zone(config.RSI_OVERBOUGHT - 0.01) == "neutral"
        assert rsi_zone(config.RSI_OVERSOLD) == "oversold"
        assert rsi_zone(config.RSI_OVERSOLD + 0.01) == "neutral"

    def test_rsi_zone_custom_thresholds(self):
        assert rsi_zone(65, overbought=60, oversold=40) == "overbought"
        assert rsi_zone(45, overbought=60, oversold=40) == "neutral"
