"""Configuration, route sniffing and connection relaying for an audio/video streaming daemon."""

__version__ = "0.1.0"

__all__ = ["types", "listen_config", "config", "configfile", "routing", "proxy"]