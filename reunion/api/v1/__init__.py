"""
API v1 package.

Contains versioned API routes for group registration and staff review.
"""

from reunion.api.v1.routes import router

__all__ = ["router"]
