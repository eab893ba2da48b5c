from unittest.mock import MagicMock

import pytest
import requests

from frequency import auth
from frequency.auth import TOKEN_URL, SpotifyTokenClient
from frequency.errors import TokenRelayError


@pytest.fixture
def fake_post(monkeypatch):
    post = MagicMock()
    monkeypatch.setattr(auth.requests, "post", post)
    return post


def _reply(post, payload=None, json_error=None):
    response = MagicMock()
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    post.return_value = response


def _client():
    return SpotifyTokenClient("client-id", "client-secret")


def test_exchange_code_posts_authorization_code_grant(fake_post):
    _reply(fake_post, {"access_token": "a", "refresh_token": "r"})

    data = _client().exchange_code("the-code", "https://app.test/cb", "verifier")

    assert data == {"access_token": "a", "refresh_token": "r"}
    fake_post.assert_called_once_with(
        TOKEN_URL,
        data={
            "grant_type": "authorization_code",
            "code": "the-code",
            "redirect_uri": "https://app.test/cb",
            "code_verifier": "verifier",
        },
        auth=("client-id", "client-secret"),
        timeout=10,
    )


def test_refresh_posts_refresh_grant(fake_post):
    _reply(fake_post, {"access_token": "new"})

    assert _client().refresh("r-token") == {"access_token": "new"}
    _, kwargs = fake_post.call_args
    assert kwargs["data"] == {"grant_type": "refresh_token", "refresh_token": "r-token"}


def test_each_grant_is_an_independent_request(fake_post):
    _reply(fake_post, {"access_token": "new"})
    client = _client()

    client.refresh("one")
    client.refresh("two")

    assert fake_post.call_count == 2
    assert not hasattr(client, "session")


def test_provider_errors_are_returned_not_raised(fake_post):
    _reply(fake_post, {"error": "invalid_grant"})

    assert _client().refresh("expired") == {"error": "invalid_grant"}


def test_network_failure_raises_relay_error(fake_post):
    fake_post.side_effect = requests.ConnectionError("down")

    with pytest.raises(TokenRelayError, match="down"):
        _client().exchange_code("c", "r", "v")


def test_non_json_response_raises_relay_error(fake_post):
    _reply(fake_post, json_error=ValueError("Expecting value"))

    with pytest.raises(TokenRelayError, match="Invalid response"):
        _client().refresh("r")
