"""Clients for external capability backends."""

from conversational_agent.core.media import MediaGenerationClient
from conversational_agent.core.search import WebSearchClient

__all__ = [
    "MediaGenerationClient",
    "WebSearchClient",
]
