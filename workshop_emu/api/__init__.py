"""
Remote Service API Layer.

This package handles all JSON communication with the workshop download service.
"""

from .client import WorkshopAPIClient

__all__ = ["WorkshopAPIClient"]
