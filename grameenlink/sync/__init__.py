"""Client-side synchronization of dashboard views with the marketplace API.

- MarketplaceClient: async HTTP client for the ``/api/v1`` endpoints
- ViewSynchronizer: polling controller with in-flight guard and change detection
- ApplicationsView: worker/employer application list built on the two
"""

from grameenlink.sync.client import ApplicationList, MarketplaceClient, MarketplaceClientError
from grameenlink.sync.synchronizer import ApplicationsView, ViewSynchronizer, default_version_key

__all__ = [
    "ApplicationList",
    "ApplicationsView",
    "MarketplaceClient",
    "MarketplaceClientError",
    "ViewSynchronizer",
    "default_version_key",
]
