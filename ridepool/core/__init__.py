"""
Core utilities shared across the Ridepool API.

This package hosts:
- configuration helpers (env vars, feature flags)
- the error kinds raised by stores and services
- cross-cutting adapters such as logging setup and the Redis client
"""
