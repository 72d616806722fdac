from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from supabase import Client

from authbridge.config import Settings
from authbridge.core.dependencies import get_admin_client, get_settings, require_admin_secret
from authbridge.modules.admin.schemas import BackfillEmailRequest, PinForUserRequest
from authbridge.modules.admin.service import AdminPinService, ResyncOutcome

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin_secret)])

_OUTCOME_STATUS = {
    ResyncOutcome.NO_PIN_ROW: (404, "No PIN row"),
    ResyncOutcome.NO_SALT: (409, "No salt"),
}


def get_admin_pin_service(
    supabase: Client = Depends(get_admin_client),
    settings: Settings = Depends(get_settings),
) -> AdminPinService:
    return AdminPinService(supabase, settings.pin_pepper)


@router.post("/resync-pin", status_code=204)
async def resync_pin(
    body: PinForUserRequest,
    service: AdminPinService = Depends(get_admin_pin_service),
):
    """Recompute and push the provider password for a user's PIN"""
    outcome = service.resync_pin(body.user_id, body.pin)
    if outcome in _OUTCOME_STATUS:
        status_code, message = _OUTCOME_STATUS[outcome]
        return JSONResponse({"ok": False, "error": outcome.value, "message": message}, status_code=status_code)
    return Response(status_code=204)


@router.post("/set-pin-for-user", status_code=204)
async def set_pin_for_user(
    body: PinForUserRequest,
    service: AdminPinService = Depends(get_admin_pin_service),
):
    """Assign a PIN to any account (synthetic email when none exists)"""
    service.set_pin_for_user(body.user_id, body.pin)
    return Response(status_code=204)


@router.post("/backfill-canonical-email")
async def backfill_canonical_email(
    body: BackfillEmailRequest,
    service: AdminPinService = Depends(get_admin_pin_service),
):
    """Assign <id>@gn.local to listed accounts that have no email; one result per id"""
    return {"ok": True, "results": service.backfill_canonical_email(body.user_ids)}
