from fastapi import APIRouter, HTTPException, Request

from ridepool.schemas import PassResultOut
from ridepool.services.reconciler import PASS_NAMES, Reconciler

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


def _get_reconciler(request: Request) -> Reconciler:
    reconciler = getattr(getattr(request.app, "state", None), "reconciler", None)
    if not reconciler:
        raise RuntimeError("Reconciler not configured")
    return reconciler


@router.get("/reconcile")
def list_passes(request: Request):
    reconciler = _get_reconciler(request)
    return {name: {"running": reconciler.is_running(name)} for name in PASS_NAMES}


@router.post("/reconcile/{pass_name}", response_model=PassResultOut)
def run_pass(pass_name: str, request: Request):
    """Run one reconciliation pass now; a pass already in progress is reported as skipped."""
    if pass_name not in PASS_NAMES:
        raise HTTPException(404, f"Unknown reconciliation pass: {pass_name}")
    return _get_reconciler(request).run(pass_name).as_dict()
