"""Relay for OAuth token grants against the Spotify accounts service.

The frontend runs the PKCE authorization flow and hands the resulting code
(or a refresh token) to this service, which adds the client credentials
that must not ship to the browser.
"""

from __future__ import annotations

import logging

import requests

from .errors import TokenRelayError

logger = logging.getLogger(__name__)

TOKEN_URL = "https://accounts.spotify.com/api/token"
TOKEN_TIMEOUT = 10


class SpotifyTokenClient:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str = TOKEN_URL,
        timeout: float = TOKEN_TIMEOUT,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.timeout = timeout

    def _post(self, grant: dict) -> dict:
        logger.debug("Requesting %s grant", grant["grant_type"])
        try:
            response = requests.post(
                self.token_url,
                data=grant,
                auth=(self.client_id, self.client_secret),
                timeout=self.timeout,
            )
            payload = response.json()
        except requests.RequestException as exc:
            logger.warning("Token request failed: %s", exc)
            raise TokenRelayError(str(exc)) from exc
        except ValueError as exc:
            logger.warning("Token endpoint returned a non-JSON body: %s", exc)
            raise TokenRelayError("Invalid response from token endpoint") from exc

        if not isinstance(payload, dict):
            raise TokenRelayError("Invalid response from token endpoint")
        if "error" in payload:
            logger.info(
                "Token endpoint rejected %s grant: %s",
                grant["grant_type"],
                payload.get("error"),
            )
        return payload

    def exchange_code(self, code: str, redirect_uri: str, code_verifier: str) -> dict:
        """Trade an authorization code for access and refresh tokens."""
        return self._post(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "code_verifier": code_verifier,
            }
        )

    def refresh(self, refresh_token: str) -> dict:
        """Obtain a fresh access token."""
        return self._post(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )
