"""API module for DocSync.

FastAPI route definitions for connection, profiles and synchronization.
"""

from . import auth, profiles, sync
