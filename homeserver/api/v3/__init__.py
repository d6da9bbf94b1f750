"""
Client-server API v3 package.

Contains the registration routes of the client-server API.
"""

from homeserver.api.v3.routes import router

__all__ = ["router"]
