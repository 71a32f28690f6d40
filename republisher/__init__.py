"""Republisher for published classified-ad listings."""

from .config import RepublisherConfig
from .service import RepublishService

__all__ = ["RepublishService", "RepublisherConfig"]
