"""Marketplace core for GrameenLink.

Subsystems:
- applications: job application lifecycle and the application store
- scoring: Shakti Score trust metric for worker profiles
- normalize: mapping of loosely shaped records onto the canonical models
"""

from grameenlink.marketplace.config import MarketplaceConfig

__all__ = ["MarketplaceConfig"]
