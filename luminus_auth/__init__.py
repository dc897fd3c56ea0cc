"""luminus-auth - headless LumiNUS OpenID Connect login."""

__version__ = "0.1.0"
