"""
Application core: service container, lifespan and CORS configuration.
"""

from .container import ServiceContainer, get_container

__all__ = ["ServiceContainer", "get_container"]
