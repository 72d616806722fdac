import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from supabase import Client

from authbridge.core.errors import ApiError
from authbridge.database.supabase_client import row_or_none
from authbridge.modules.credentials.pin import (
    KDF_LABEL,
    derive_password_from_pin,
    generate_salt,
    is_valid_pin,
    normalize_salt,
)

logger = logging.getLogger(__name__)

SYNTHETIC_EMAIL_DOMAIN = "gn.local"


class ResyncOutcome(str, Enum):
    UPDATED = "updated"
    NO_PIN_ROW = "no_pin_row"
    NO_SALT = "no_salt"


class AdminPinService:
    """Service-role PIN maintenance. Never reachable without the admin secret."""

    def __init__(self, supabase: Client, pepper: str):
        self.supabase = supabase
        self.pepper = pepper

    def _validate(self, user_id: Optional[str], pin: Optional[str]):
        if not user_id or not is_valid_pin(pin):
            raise ApiError(400, "bad_request", "Provide userId and a 4-8 digit pin")

    def resync_pin(self, user_id: Optional[str], pin: Optional[str]) -> ResyncOutcome:
        """Recompute the provider password for a user whose PIN changed out of band."""
        self._validate(user_id, pin)
        result = self.supabase.table("auth_local_pin")\
            .select("salt, salt_b64")\
            .eq("user_id", user_id)\
            .maybe_single()\
            .execute()
        row = row_or_none(result)
        if not row:
            return ResyncOutcome.NO_PIN_ROW

        try:
            salt_b64 = normalize_salt(row.get("salt_b64") or row.get("salt"))
        except ValueError as e:
            logger.warning(f"Unreadable PIN salt for user {user_id}: {e}")
            salt_b64 = None
        if not salt_b64:
            return ResyncOutcome.NO_SALT

        try:
            derived = derive_password_from_pin(pin, user_id, salt_b64, self.pepper)
        except ValueError as e:
            logger.warning(f"PIN salt for user {user_id} does not decode: {e}")
            return ResyncOutcome.NO_SALT

        self._push_password(user_id, derived)
        logger.info(f"Resynced PIN password for user {user_id}")
        return ResyncOutcome.UPDATED

    def set_pin_for_user(self, user_id: Optional[str], pin: Optional[str]):
        """Assign a PIN to an arbitrary account, creating a synthetic email when it has none."""
        self._validate(user_id, pin)
        try:
            user_response = self.supabase.auth.admin.get_user_by_id(user_id)
        except Exception as e:
            logger.error(f"Auth lookup failed for user {user_id}: {e}")
            raise ApiError(404, "user_not_found")
        user = getattr(user_response, "user", None)
        if user is None:
            raise ApiError(404, "user_not_found")

        if not user.email:
            synthetic = f"{user_id}@{SYNTHETIC_EMAIL_DOMAIN}"
            try:
                self.supabase.auth.admin.update_user_by_id(user_id, {"email": synthetic})
                self.supabase.table("profiles")\
                    .upsert({"id": user_id, "email": synthetic}, on_conflict="id")\
                    .execute()
            except Exception as e:
                logger.error(f"Failed to assign canonical email for user {user_id}: {e}")
                raise ApiError(500, "canonical_email_failed", "Failed to assign canonical email")

        salt_b64 = generate_salt()
        derived = derive_password_from_pin(pin, user_id, salt_b64, self.pepper)
        try:
            self.supabase.table("auth_local_pin")\
                .upsert({"user_id": user_id, "salt_b64": salt_b64, "kdf": KDF_LABEL}, on_conflict="user_id")\
                .execute()
        except Exception as e:
            logger.error(f"Failed to store PIN salt for user {user_id}: {e}")
            raise ApiError(500, "pin_store_failed", "Failed to store PIN")

        self._push_password(user_id, derived)
        logger.info(f"Set PIN for user {user_id}")

    def _push_password(self, user_id: str, password: str):
        try:
            self.supabase.auth.admin.update_user_by_id(user_id, {"password": password})
        except Exception as e:
            logger.error(f"GoTrue password update failed for user {user_id}: {e}")
            raise ApiError(500, "provider_update_failed", "GoTrue update failed")

    def backfill_canonical_email(self, user_ids: Any) -> List[Dict[str, Any]]:
        """Give every listed account without an email the synthetic <id>@gn.local address."""
        if not isinstance(user_ids, list) or not user_ids:
            raise ApiError(400, "bad_request", "Provide userIds[]")

        results = []
        for user_id in user_ids:
            user_id = str(user_id)
            try:
                user_response = self.supabase.auth.admin.get_user_by_id(user_id)
                current = getattr(getattr(user_response, "user", None), "email", None)
            except Exception as e:
                logger.warning(f"Auth lookup failed for user {user_id} during email backfill: {e}")
                current = None
            if current:
                results.append({"id": user_id, "status": "exists", "email": current})
                continue

            synthetic = f"{user_id}@{SYNTHETIC_EMAIL_DOMAIN}"
            try:
                self.supabase.auth.admin.update_user_by_id(user_id, {"email": synthetic})
            except Exception as e:
                logger.error(f"Canonical email backfill failed for user {user_id}: {e}")
                results.append({"id": user_id, "status": "error", "message": str(e)})
                continue
            results.append({"id": user_id, "status": "updated", "email": synthetic})

        updated = sum(1 for r in results if r["status"] == "updated")
        logger.info(f"Canonical email backfill: {updated} of {len(results)} accounts updated")
        return results
