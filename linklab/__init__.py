"""LinkLab URL shortener: short links, redirects and click analytics."""

__version__ = "1.0.0"
