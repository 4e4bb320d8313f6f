"""gymdm core: season engine for a hearts-based fitness competition."""

__version__ = "0.1.0"
