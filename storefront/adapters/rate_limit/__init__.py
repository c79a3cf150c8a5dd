"""Rate limiting adapters.

This package provides a small abstraction layer so the edge can start with an
in-memory limiter and later migrate to a shared store without changing the
pipeline stages.
"""
