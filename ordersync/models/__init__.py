"""Database models — re-exports all models.

Import from here:  from ordersync.models import Document, SyncLog
"""

from .base import Base  # noqa: F401

# Shared documents
from .document import Document  # noqa: F401

# Sync
from .sync import SyncLog  # noqa: F401
