"""Flask application exposing resolved feeds and the token relay."""

from __future__ import annotations

import logging
from importlib import metadata
from typing import Optional

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS

from .auth import SpotifyTokenClient
from .config import AppConfig, load_secrets, parse_categories_config
from .errors import NoSourceAvailable, TokenRelayError, UnknownCategory
from .resolver import FeedResolver
from .transport import RequestsTransport

logger = logging.getLogger(__name__)

news_bp = Blueprint("news", __name__)
auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _version() -> str:
    try:
        return metadata.version("frequency-backend")
    except metadata.PackageNotFoundError:
        return "1.0.0"


def _resolver() -> FeedResolver:
    return current_app.extensions["feed_resolver"]


def _token_client() -> Optional[SpotifyTokenClient]:
    return current_app.extensions.get("token_client")


@news_bp.get("/")
def health():
    return jsonify(status="FREQUENCY BACKEND ONLINE", version=_version())


@news_bp.get("/feed")
def list_categories():
    resolver = _resolver()
    return jsonify(
        categories=[
            {"category": key, "sources": len(resolver.registry.sources_for(key))}
            for key in resolver.categories()
        ]
    )


@news_bp.get("/feed/<category>")
@news_bp.get("/news/<category>")
def get_feed(category: str):
    try:
        result = _resolver().resolve(category)
    except UnknownCategory:
        return jsonify(error="Unknown feed", category=category), 404
    except NoSourceAvailable as exc:
        return jsonify(error="Feed fetch failed", category=exc.category), 500
    return jsonify(result.to_dict())


def _request_fields() -> dict:
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    return request.form.to_dict()


def _relay_unavailable():
    return jsonify(error="Token relay not configured"), 503


@auth_bp.post("/token")
def exchange_token():
    client = _token_client()
    if client is None:
        return _relay_unavailable()

    fields = _request_fields()
    code = fields.get("code")
    redirect_uri = fields.get("redirect_uri")
    code_verifier = fields.get("code_verifier")
    if not code or not redirect_uri or not code_verifier:
        return jsonify(error="Missing required fields"), 400

    try:
        data = client.exchange_code(code, redirect_uri, code_verifier)
    except TokenRelayError as exc:
        return jsonify(error="Token exchange failed", detail=str(exc)), 500

    if "error" in data:
        return jsonify(data), 400
    return jsonify(data)


@auth_bp.post("/refresh")
def refresh_token():
    client = _token_client()
    if client is None:
        return _relay_unavailable()

    refresh = _request_fields().get("refresh_token")
    if not refresh:
        return jsonify(error="Missing refresh_token"), 400

    try:
        data = client.refresh(refresh)
    except TokenRelayError as exc:
        return jsonify(error="Refresh failed", detail=str(exc)), 500
    return jsonify(data)


def create_app(
    config: AppConfig,
    resolver: Optional[FeedResolver] = None,
    token_client: Optional[SpotifyTokenClient] = None,
) -> Flask:
    """Build the Flask application.

    The resolver and token client are built from ``config`` unless given.
    """
    if resolver is None:
        resolver = FeedResolver(
            parse_categories_config(config.categories_file),
            RequestsTransport(),
            timeout=config.fetch.timeout,
            user_agent=config.fetch.user_agent,
        )
    if token_client is None:
        secrets = load_secrets(config.env_file)
        if secrets.configured:
            token_client = SpotifyTokenClient(
                secrets.spotify_client_id, secrets.spotify_client_secret
            )

    app = Flask(__name__)
    app.extensions["feed_resolver"] = resolver
    app.extensions["token_client"] = token_client

    CORS(app, origins=config.cors_origins, methods=["GET", "POST"])
    app.register_blueprint(news_bp)
    app.register_blueprint(auth_bp)

    logger.info(
        "Serving %d categories; token relay %s",
        len(resolver.categories()),
        "enabled" if token_client is not None else "disabled",
    )
    return app
