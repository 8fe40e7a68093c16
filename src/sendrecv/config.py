"""Configuration management for sendrecv."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml


DEFAULT_STUN_SERVERS = [
    "stun:stun.l.google.com:19302",
]


@dataclass
class RelayConfig:
    """ntfy relay used as the signaling channel."""

    server: str = "https://ntfy.sh"
    offer_topic: str = "mediaReceiverSendOffer"  # we publish here
    answer_topic: str = "mediaReceiverGetAnswer"  # we subscribe here
    verify_tls: bool = True
    ca_file: str | None = None
    client_cert: str | None = None
    request_timeout: float = 10.0  # seconds


@dataclass
class NegotiationConfig:
    """Offer/answer timing."""

    connect_timeout: float | None = 10.0  # seconds, None = wait forever
    answer_timeout: float | None = None  # seconds, None = wait forever


@dataclass
class Config:
    """Application configuration."""

    log_level: str = "INFO"
    log_file: str | None = None
    stun_servers: list[str] = field(default_factory=lambda: DEFAULT_STUN_SERVERS.copy())
    relay: RelayConfig = field(default_factory=RelayConfig)
    negotiation: NegotiationConfig = field(default_factory=NegotiationConfig)


def get_config_path(custom_path: Path | None = None) -> Path:
    """Get the configuration file path.

    Args:
        custom_path: Override path. If None, returns default.

    Returns:
        Path to config file.
    """
    if custom_path is not None:
        return custom_path
    return Path.home() / ".config" / "sendrecv" / "config.yaml"


def _default_file_reader(path: Path) -> dict[str, Any] | None:
    """Default file reader that loads YAML from disk."""
    if not path.exists():
        return None
    try:
        content = path.read_text()
        if not content.strip():
            return None
        return yaml.safe_load(content)
    except yaml.YAMLError:
        return None


def load_config(
    path: Path | None = None,
    file_reader: Callable[[Path], dict[str, Any] | None] | None = None,
) -> Config:
    """Load configuration from file.

    Args:
        path: Path to config file. If None, uses default path.
        file_reader: Injectable file reader for testing.

    Returns:
        Config object with values from file or defaults.
    """
    config_path = get_config_path(path)
    reader = file_reader or _default_file_reader

    data = reader(config_path)

    if not isinstance(data, dict):
        return Config()

    # Parse relay config section
    relay_data = data.get("relay") or {}
    relay_config = RelayConfig(
        server=relay_data.get("server", RelayConfig.server),
        offer_topic=relay_data.get("offer_topic", RelayConfig.offer_topic),
        answer_topic=relay_data.get("answer_topic", RelayConfig.answer_topic),
        verify_tls=relay_data.get("verify_tls", RelayConfig.verify_tls),
        ca_file=relay_data.get("ca_file", RelayConfig.ca_file),
        client_cert=relay_data.get("client_cert", RelayConfig.client_cert),
        request_timeout=relay_data.get("request_timeout", RelayConfig.request_timeout),
    )

    # Parse negotiation config section
    negotiation_data = data.get("negotiation") or {}
    negotiation_config = NegotiationConfig(
        connect_timeout=negotiation_data.get(
            "connect_timeout", NegotiationConfig.connect_timeout
        ),
        answer_timeout=negotiation_data.get(
            "answer_timeout", NegotiationConfig.answer_timeout
        ),
    )

    return Config(
        log_level=data.get("log_level", Config.log_level),
        log_file=data.get("log_file", Config.log_file),
        stun_servers=data.get("stun_servers", DEFAULT_STUN_SERVERS.copy()),
        relay=relay_config,
        negotiation=negotiation_config,
    )
