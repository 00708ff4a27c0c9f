"""edmconv — dataset register harvester and EDM converter."""

__version__ = "0.3.0"
