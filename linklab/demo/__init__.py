"""
Demo (anonymous) link registry.
Process-local fallback used when an anonymous link is not stored durably.
"""

from .models import DemoLinkEntry
from .registry import DemoRegistryStrategy, InMemoryDemoRegistry

__all__ = [
    "DemoLinkEntry",
    "DemoRegistryStrategy",
    "InMemoryDemoRegistry",
]
