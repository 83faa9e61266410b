"""
DigQuest REST API access.
"""

from digquest_sync.api.client import COLLECTION_PATHS, DigQuestApiClient

__all__ = ["DigQuestApiClient", "COLLECTION_PATHS"]
