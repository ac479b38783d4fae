"""Registry adapters - Browser-driven license registry access."""

from .browser import BrowserPool
from .scraper import SacsRegistryScraper

__all__ = ["BrowserPool", "SacsRegistryScraper"]
