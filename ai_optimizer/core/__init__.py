"""
Core modules for AI Optimizer.

This package contains the response cache, rate limiter, token monitor,
prompt templates and local fallbacks.
"""
