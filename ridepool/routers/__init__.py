"""
FastAPI routers grouped by concern (sessions, maintenance).

Each module exposes an APIRouter included by ridepool.app.create_app; services
are looked up on request.app.state.
"""
