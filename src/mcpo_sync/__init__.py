"""mcpo-sync: keeps an mcpo proxy configuration and Open WebUI in step."""

__version__ = "0.1.0"
