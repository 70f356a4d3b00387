"""
Upstream package for the spell metadata service.

Wraps the Blizzard Game Data API behind the ``UpstreamClient`` interface,
with OAuth token handling, retries for transport errors and a circuit
breaker. Failures are classified as not-found or transient.
"""

from .base import UpstreamClient, UpstreamError, UpstreamNotFoundError
from .blizzard import BlizzardClient

__all__ = [
    "UpstreamClient",
    "UpstreamError",
    "UpstreamNotFoundError",
    "BlizzardClient",
]
