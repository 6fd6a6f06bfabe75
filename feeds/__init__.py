"""
Feeds Package

Connectors to the upstream price cache service:
- api_client.py: REST client with timeout and fallback degradation
- ws_client.py: Stats stream client with backoff reconnection
- fallback.py: Local synthesizer used whenever the upstream is unavailable
"""

from .fallback import FallbackSynthesizer
from .api_client import PriceFeedClient
from .ws_client import StreamClient, create_stats_stream

__all__ = ["FallbackSynthesizer", "PriceFeedClient", "StreamClient", "create_stats_stream"]
