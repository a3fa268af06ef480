"""ghostgate: policy-gated interception and deferred delivery for Telegram."""

__version__ = "0.1.0"
