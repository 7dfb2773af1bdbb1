"""Tests for rate limit client identity."""

import pytest
from fastapi import HTTPException, Request

from admission.app.core.utils import hash_identifier
from admission.app.middleware.identity import get_client_ip, get_client_key


def make_request(headers=None, client=("10.0.0.1", 5000), user_id=None) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/api/test",
        "headers": [
            (name.lower().encode(), value.encode())
            for name, value in (headers or {}).items()
        ],
        "client": client,
        "state": {},
    }
    request = Request(scope)
    if user_id is not None:
        request.state.user_id = user_id
    return request


class TestGetClientKey:
    """Tests for API key > user > IP priority."""

    def test_api_key_takes_priority(self):
        request = make_request({"X-API-Key": "secret-key"}, user_id="user-1")

        key = get_client_key(request)

        assert key == f"rl:apikey:{hash_identifier('secret-key')}"
        assert "secret-key" not in key

    def test_user_id_used_without_api_key(self):
        assert get_client_key(make_request(user_id="user-1")) == "rl:user:user-1"

    def test_falls_back_to_ip(self):
        key = get_client_key(make_request())
        assert key == f"rl:ip:{hash_identifier('10.0.0.1')}"

    def test_blank_api_key_ignored(self):
        key = get_client_key(make_request({"X-API-Key": "   "}))
        assert key.startswith("rl:ip:")

    def test_overlong_api_key_rejected(self):
        with pytest.raises(HTTPException) as exc_info:
            get_client_key(make_request({"X-API-Key": "k" * 513}))
        assert exc_info.value.status_code == 400

    def test_missing_client_uses_unknown(self):
        key = get_client_key(make_request(client=None))
        assert key == f"rl:ip:{hash_identifier('unknown')}"


class TestGetClientIp:
    """Tests for X-Forwarded-For handling."""

    def test_forwarded_for_ignored_by_default(self):
        request = make_request({"X-Forwarded-For": "203.0.113.9"})
        assert get_client_ip(request, trust_forwarded_for=False) == "10.0.0.1"

    def test_forwarded_for_first_hop_when_trusted(self):
        request = make_request({"X-Forwarded-For": "203.0.113.9, 10.0.0.2"})
        assert get_client_ip(request, trust_forwarded_for=True) == "203.0.113.9"

    def test_trusted_but_absent(self):
        assert get_client_ip(make_request(), trust_forwarded_for=True) == "10.0.0.1"
