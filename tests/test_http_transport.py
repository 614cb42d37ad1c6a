"""
Unit tests for the requests based transport.

The underlying requests.Session is mocked; no network access.
"""

import pytest
import os
import sys
from unittest.mock import Mock, MagicMock

import requests

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.errors import TransportError
from infrastructure.http_transport import RequestsTransport


def make_response(status_code=200, json_body=None, text="", cookies=None):
    response = Mock()
    response.status_code = status_code
    response.text = text
    if json_body is None:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = json_body
    response.raw.headers.getlist.return_value = cookies or []
    return response


class TestRequestsTransport:
    """Test suite for RequestsTransport."""

    @pytest.fixture
    def http_session(self):
        return MagicMock(spec=requests.Session)

    @pytest.fixture
    def transport(self, http_session):
        return RequestsTransport(timeout=7, session=http_session)

    def test_default_session_has_retry_adapter(self):
        transport = RequestsTransport(timeout=3)
        adapter = transport._http_session.get_adapter("https://api.kite.trade")
        assert adapter.max_retries.total == 3
        assert "POST" not in adapter.max_retries.allowed_methods
        assert "Mozilla" in transport._http_session.headers["User-Agent"]

    def test_timeout_from_environment(self, http_session, monkeypatch):
        monkeypatch.setenv("KITE_HTTP_TIMEOUT", "12")
        assert RequestsTransport(session=http_session).timeout == 12.0

    def test_json_response(self, transport, http_session):
        http_session.request.return_value = make_response(200, {"status": "success", "data": {"a": 1}})

        response = transport.request("GET", "https://api.kite.trade/user/margins", params={"x": 1})

        assert response.status_code == 200
        assert response.body == {"status": "success", "data": {"a": 1}}
        http_session.request.assert_called_once_with(
            method="GET",
            url="https://api.kite.trade/user/margins",
            headers=None,
            data=None,
            params={"x": 1},
            timeout=7
        )

    def test_form_body_drops_none_values(self, transport, http_session):
        http_session.request.return_value = make_response(200, {"data": {}})
        transport.request("post", "https://kite.zerodha.com/api/login", data={"user_id": "AB", "password": None})

        kwargs = http_session.request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["data"] == {"user_id": "AB"}

    def test_set_cookies_are_collected(self, transport, http_session):
        http_session.request.return_value = make_response(
            200, {"data": {}}, cookies=["enctoken=abc; path=/", "kf_session=x"]
        )
        response = transport.request("POST", "https://kite.zerodha.com/api/twofa")
        assert response.set_cookies == ["enctoken=abc; path=/", "kf_session=x"]

    def test_non_json_body(self, transport, http_session):
        http_session.request.return_value = make_response(200, None, text="instrument_token,exchange_token\n")
        response = transport.request("GET", "https://api.kite.trade/instruments")
        assert response.body is None
        assert response.text.startswith("instrument_token")

    def test_error_status_is_returned_not_raised(self, transport, http_session):
        http_session.request.return_value = make_response(403, {"status": "error", "message": "Invalid token"})
        response = transport.request("GET", "https://api.kite.trade/orders")
        assert response.status_code == 403
        assert response.message == "Invalid token"

    @pytest.mark.parametrize("exc", [
        requests.exceptions.Timeout("slow"),
        requests.exceptions.ConnectionError("refused"),
        requests.exceptions.RequestException("boom"),
    ])
    def test_network_errors_raise_transport_error(self, transport, http_session, exc):
        http_session.request.side_effect = exc
        with pytest.raises(TransportError):
            transport.request("GET", "https://api.kite.trade/orders")
