"""Ridepool backend: session lifecycle across the Redis and SQL session stores."""

__version__ = "0.1.0"
