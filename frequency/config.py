"""Configuration loading for the feed service."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
from xml.etree import ElementTree as ET

from .models import FeedSource
from .registry import CategoryRegistry

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = [
    "https://profound-bavarois-dec4a5.netlify.app",
    "http://localhost:8080",
    "http://localhost:3000",
]

SECRET_VARIABLES = {
    "spotify_client_id": "SPOTIFY_CLIENT_ID",
    "spotify_client_secret": "SPOTIFY_CLIENT_SECRET",
}


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    threads: int = 8


@dataclass
class FetchConfig:
    timeout: float = 8.0
    user_agent: str = "FrequencyApp/1.0"


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class AppConfig:
    categories_file: str
    env_file: Optional[str] = None
    server: ServerConfig = field(default_factory=ServerConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    concurrency: int = 4
    logging: LoggingConfig = field(default_factory=LoggingConfig)


@dataclass(frozen=True)
class Secrets:
    """Credentials for the OAuth token relay."""

    spotify_client_id: Optional[str] = None
    spotify_client_secret: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.spotify_client_id and self.spotify_client_secret)


def parse_categories_config(path: str) -> CategoryRegistry:
    """Parse the OPML category file into a registry.

    Each top-level outline is a category; its ``type="rss"`` children are the
    sources, highest priority first.
    """
    logger.info("Loading category configuration from %s", path)
    tree = ET.parse(path)
    root = tree.getroot()
    body = root.find("body")
    if body is None:
        raise ValueError("categories.xml is missing the <body> section.")

    categories: Dict[str, List[FeedSource]] = {}
    for outline in body.findall("outline"):
        key = outline.attrib.get("text") or outline.attrib.get("title")
        if not key:
            raise ValueError("Category outline is missing a text attribute.")
        key = key.strip()
        if key in categories:
            raise ValueError(f"Duplicate category {key!r} in {path}.")

        sources: List[FeedSource] = []
        for child in outline.iter("outline"):
            feed_url = child.attrib.get("xmlUrl")
            if child is outline or child.attrib.get("type") != "rss" or not feed_url:
                continue
            title = child.attrib.get("title") or child.attrib.get("text") or feed_url
            sources.append(FeedSource(category=key, title=title, url=feed_url.strip()))
            logger.debug("Registered source '%s' for category '%s'", feed_url, key)

        if not sources:
            raise ValueError(f"Category {key!r} has no feed sources.")
        categories[key] = sources

    registry = CategoryRegistry(categories)
    logger.info("Loaded %d categories from configuration", len(registry))
    return registry


def _resolve_path(base_path: Path, target_path: str) -> str:
    """Resolve a path relative to the base config file if it's not absolute."""
    target = Path(target_path)
    if target.is_absolute():
        return str(target)
    return str((base_path.parent / target).resolve())


def parse_env_config(path: str) -> Dict[str, str]:
    """Parse environment variables from XML."""
    env_vars = {}
    if not path:
        return env_vars

    logger.info("Loading environment configuration from %s", path)
    tree = ET.parse(path)
    root = tree.getroot()
    for var in root.findall("variable"):
        name = var.attrib.get("name")
        value = var.text
        if name and value:
            env_vars[name] = value.strip()

    return env_vars


def load_secrets(env_file: Optional[str] = None) -> Secrets:
    """Collect token relay credentials from the environment and ``env_file``.

    A variable set to different values in both places is an error.
    """
    file_values = parse_env_config(env_file) if env_file else {}
    values = {}
    for attr, name in SECRET_VARIABLES.items():
        from_env = os.environ.get(name)
        from_file = file_values.get(name)
        if from_env and from_file and from_env != from_file:
            raise ValueError(
                f"Secret conflict for '{attr}': environment and {env_file} disagree."
            )
        values[attr] = from_env or from_file

    secrets = Secrets(**values)
    if not secrets.configured:
        missing = [name for attr, name in SECRET_VARIABLES.items() if not values[attr]]
        logger.warning(
            "Missing secrets %s; the token relay is disabled.", ", ".join(missing)
        )
    return secrets


def parse_app_config(path: str) -> AppConfig:
    """Parse the main application configuration XML."""
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info("Loading application configuration from %s", config_path)
    tree = ET.parse(config_path)
    root = tree.getroot()

    categories_node = root.find("categories")
    if categories_node is None or not categories_node.text:
        raise ValueError("Config missing <categories> path")
    categories_file = _resolve_path(config_path, categories_node.text.strip())

    env_node = root.find("env")
    env_file = (
        _resolve_path(config_path, env_node.text.strip())
        if env_node is not None and env_node.text
        else None
    )

    server = ServerConfig()
    server_node = root.find("server")
    if server_node is not None:
        server.host = server_node.findtext("host", server.host).strip()
        server.port = int(server_node.findtext("port", str(server.port)))
        server.threads = int(server_node.findtext("threads", str(server.threads)))
        if server.threads < 1:
            raise ValueError("<server><threads> must be at least 1")
    if os.environ.get("PORT"):
        server.port = int(os.environ["PORT"])

    fetch = FetchConfig()
    fetch_node = root.find("fetch")
    if fetch_node is not None:
        fetch.timeout = float(fetch_node.findtext("timeout", str(fetch.timeout)))
        fetch.user_agent = fetch_node.findtext("user-agent", fetch.user_agent).strip()
    if fetch.timeout <= 0:
        raise ValueError("<fetch><timeout> must be positive.")

    cors_origins = list(DEFAULT_CORS_ORIGINS)
    cors_node = root.find("cors")
    if cors_node is not None:
        cors_origins = [
            origin.text.strip()
            for origin in cors_node.findall("origin")
            if origin.text and origin.text.strip()
        ]

    concurrency = int(root.findtext("concurrency", "4"))
    if concurrency < 1:
        raise ValueError("<concurrency> must be at least 1.")

    log_node = root.find("logging")
    logging_config = LoggingConfig()
    if log_node is not None:
        logging_config.level = log_node.findtext("level", "INFO")
        log_file = log_node.findtext("file")
        if log_file:
            logging_config.file = _resolve_path(config_path, log_file)

    return AppConfig(
        categories_file=categories_file,
        env_file=env_file,
        server=server,
        fetch=fetch,
        cors_origins=cors_origins,
        concurrency=concurrency,
        logging=logging_config,
    )
