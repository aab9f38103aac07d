"""
HTTP surface for AI Optimizer.
"""

from .app import create_app
from .middleware import client_identifier, with_rate_limit

__all__ = ["create_app", "client_identifier", "with_rate_limit"]
