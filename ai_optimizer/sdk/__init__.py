"""
SDK for AI Optimizer.

Provides provider clients wired through the cache and token monitor.
"""

from .openai_client import OptimizedOpenAI

__all__ = ["OptimizedOpenAI"]
