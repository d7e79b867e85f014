from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from ridepool.core.errors import CapacityExceeded, ConflictError, NotFound, StoreUnavailable
from ridepool.schemas import (
    CapacityExceededOut,
    LiveSessionOut,
    SessionCreateRequest,
    SessionMetadataOut,
)
from ridepool.services.session_service import SessionService

router = APIRouter(tags=["sessions"])


def _get_session_service(request: Request) -> SessionService:
    svc = getattr(getattr(request.app, "state", None), "session_service", None)
    if not svc:
        raise RuntimeError("SessionService not configured")
    return svc


def _unavailable(exc: StoreUnavailable) -> HTTPException:
    return HTTPException(503, str(exc))


def _capacity_response(exc: CapacityExceeded) -> JSONResponse:
    body = CapacityExceededOut(
        detail=str(exc),
        user_id=exc.user_id,
        limit=exc.limit,
        active_count=exc.active_count,
        oldest_session_id=exc.oldest_session_id,
        oldest_started_at=exc.oldest_started_at,
    )
    return JSONResponse(body.model_dump(mode="json"), status_code=429)


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return None


@router.post("/sessions", status_code=201, response_model=SessionMetadataOut)
def create_session(payload: SessionCreateRequest, request: Request):
    svc = _get_session_service(request)
    try:
        record = svc.issue_session(
            payload.user_id,
            ttl_seconds=payload.ttl_seconds,
            session_id=payload.session_id,
            device_type=payload.device_type,
            device_id=payload.device_id,
            app_version=payload.app_version,
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
            permissions=payload.permissions,
        )
    except CapacityExceeded as exc:
        return _capacity_response(exc)
    except ConflictError as exc:
        raise HTTPException(409, str(exc))
    except StoreUnavailable as exc:
        raise _unavailable(exc)
    return record


@router.get("/sessions/{session_id}", response_model=SessionMetadataOut)
def get_session(session_id: str, request: Request):
    svc = _get_session_service(request)
    try:
        return svc.get_session(session_id)
    except NotFound as exc:
        raise HTTPException(404, str(exc))
    except StoreUnavailable as exc:
        raise _unavailable(exc)


@router.delete("/sessions/{session_id}", status_code=204)
def logout(session_id: str, request: Request):
    svc = _get_session_service(request)
    try:
        svc.logout(session_id)
    except StoreUnavailable as exc:
        raise _unavailable(exc)
    return Response(status_code=204)


@router.get("/sessions/{session_id}/valid")
def session_valid(session_id: str, request: Request):
    svc = _get_session_service(request)
    try:
        return {"valid": svc.is_session_valid(session_id)}
    except StoreUnavailable as exc:
        raise _unavailable(exc)


@router.post("/sessions/{session_id}/activity")
def session_activity(session_id: str, request: Request):
    svc = _get_session_service(request)
    try:
        touched = svc.record_activity(session_id)
    except StoreUnavailable as exc:
        raise _unavailable(exc)
    if not touched:
        raise HTTPException(404, f"Session {session_id} is not valid")
    return {"ok": True}


@router.get("/users/{user_id}/sessions", response_model=list[LiveSessionOut])
def user_sessions(user_id: str, request: Request):
    svc = _get_session_service(request)
    try:
        return svc.list_user_sessions(user_id)
    except StoreUnavailable as exc:
        raise _unavailable(exc)


@router.get("/users/{user_id}/sessions/count")
def user_session_count(user_id: str, request: Request):
    svc = _get_session_service(request)
    try:
        return {"user_id": user_id, "active": svc.get_active_session_count(user_id)}
    except StoreUnavailable as exc:
        raise _unavailable(exc)


@router.get("/users/{user_id}/sessions/history", response_model=list[SessionMetadataOut])
def user_session_history(
    user_id: str,
    request: Request,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
):
    if start and end and start > end:
        raise HTTPException(400, "start must not be after end")
    svc = _get_session_service(request)
    try:
        return svc.get_session_history(user_id, start, end)
    except StoreUnavailable as exc:
        raise _unavailable(exc)


@router.post("/users/{user_id}/sessions/revoke")
def revoke_user_sessions(user_id: str, request: Request):
    svc = _get_session_service(request)
    try:
        return {"revoked": svc.revoke_all_sessions(user_id)}
    except StoreUnavailable as exc:
        raise _unavailable(exc)


@router.post("/users/{user_id}/devices/{device_id}/revoke")
def revoke_device_sessions(user_id: str, device_id: str, request: Request):
    svc = _get_session_service(request)
    try:
        return {"revoked": svc.revoke_device_sessions(user_id, device_id)}
    except StoreUnavailable as exc:
        raise _unavailable(exc)
