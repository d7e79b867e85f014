"""
Session lifecycle use cases.

- session_service: creation, logout and read paths used by the auth flow and reporting
- session_limiter: concurrent session cap per account
- reconciler: the four scheduled passes repairing divergence between the stores
- scheduler: APScheduler wiring for the passes

Routers call these services instead of touching either store directly.
"""
