"""
GrameenLink - job application lifecycle and trust scoring for a gig-labor
marketplace connecting workers and employers.
"""

from .marketplace.applications import ApplicationService, InMemoryApplicationStorage
from .marketplace.config import MarketplaceConfig
from .marketplace.scoring import WorkerProfile, compute_score

try:
    from importlib.metadata import version

    __version__ = version("grameenlink")
except Exception:
    __version__ = "0.0.0"

__all__ = [
    "ApplicationService",
    "InMemoryApplicationStorage",
    "MarketplaceConfig",
    "WorkerProfile",
    "compute_score",
]
