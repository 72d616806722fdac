import logging
from typing import Any, Callable, List, Optional, Tuple

from supabase import AuthError, Client

from authbridge.config import Settings
from authbridge.core.errors import ApiError
from authbridge.database.supabase_client import row_or_none
from authbridge.modules.credentials.pin import (
    KDF_LABEL,
    derive_password_from_pin,
    generate_salt,
    is_valid_pin,
    normalize_salt,
    password_candidates,
    pepper_candidates,
)
from authbridge.modules.otp.identifiers import canonicalize_nepal_phone, mask_identifier, normalize_email
from authbridge.modules.sessions.cookies import CookieJar
from authbridge.modules.sessions.models import Session

logger = logging.getLogger(__name__)


class TrustPinService:
    """
    Trust-PIN sign-in.

    The PIN never reaches GoTrue directly: the account password is the
    derived value, so setting a PIN rotates the password and signing in with
    a PIN is a password sign-in with the derived value.
    """

    def __init__(
        self,
        supabase: Client,
        get_admin: Callable[[], Client],
        jar: CookieJar,
        settings: Settings,
    ):
        self.supabase = supabase
        self._get_admin = get_admin
        self.jar = jar
        self.settings = settings

    @property
    def admin(self) -> Client:
        return self._get_admin()

    def set_pin(self, user: Any, pin: Optional[str]) -> Session:
        if not is_valid_pin(pin):
            raise ApiError(400, "invalid_pin", "PIN must be 4-8 digits")

        salt_b64 = generate_salt()
        derived = derive_password_from_pin(pin, user.id, salt_b64, self.settings.pin_pepper)
        try:
            self.admin.table("auth_local_pin")\
                .upsert({
                    "user_id": user.id,
                    "salt_b64": salt_b64,
                    "kdf": KDF_LABEL,
                    "pin_retries": 0,
                    "locked_until": None,
                }, on_conflict="user_id")\
                .execute()
            self.admin.auth.admin.update_user_by_id(user.id, {"password": derived})
            record = self.admin.auth.admin.get_user_by_id(user.id)
        except ApiError:
            raise
        except Exception as e:
            logger.exception(f"PIN update failed for user {user.id}: {e}")
            raise ApiError(500, "pin_update_failed")

        # Rotating the password ends the current session; sign in again on this response
        account = getattr(record, "user", None) or user
        identities = self._identities(account.email, account.phone)
        if not identities:
            raise ApiError(400, "no_identity", "No email or phone identity for this account")
        matched = self._sign_in(identities, [derived])
        if matched is None:
            logger.error(f"Post-update sign-in failed for user {user.id}")
            raise ApiError(500, "post_update_sign_in_failed")
        session, _ = matched
        self.jar.set_session(session)
        logger.info(f"Trust PIN set for user {user.id}")
        return session

    def login(self, method: Optional[str], user_input: Optional[str], pin: Optional[str]) -> Session:
        if not is_valid_pin(pin):
            raise ApiError(400, "invalid_pin", "PIN must be 4-8 digits")
        if method not in ("email", "phone"):
            raise ApiError(400, "invalid_method")
        if method == "email":
            identifier = normalize_email(user_input)
            if not identifier:
                raise ApiError(400, "INVALID_EMAIL")
        else:
            identifier = canonicalize_nepal_phone(user_input)
            if not identifier:
                raise ApiError(400, "INVALID_PHONE")

        try:
            profile = self._find_profile(method, identifier)
            if not profile:
                raise ApiError(404, "user_not_found")
            user_id = profile["user_id"]
            record = self.admin.auth.admin.get_user_by_id(user_id)
            pin_meta = row_or_none(
                self.admin.table("auth_local_pin")
                    .select("salt_b64, salt")
                    .eq("user_id", user_id)
                    .maybe_single()
                    .execute()
            )
        except ApiError:
            raise
        except Exception as e:
            logger.exception(f"PIN login lookup failed for {mask_identifier(identifier)}: {e}")
            raise ApiError(500, "server_error")

        pin_meta = pin_meta or {}
        try:
            salt_b64 = normalize_salt(pin_meta.get("salt_b64") or pin_meta.get("salt"))
        except ValueError:
            logger.warning(f"Unreadable PIN salt for user {user_id}")
            salt_b64 = None
        if not salt_b64:
            raise ApiError(400, "pin_not_set", "PIN not set for account")

        account = getattr(record, "user", None)
        email = getattr(account, "email", None) or profile.get("email")
        phone = getattr(account, "phone", None) or profile.get("phone")
        if method == "phone":
            identities = self._identities(None, phone or identifier) + self._identities(email, None)
        else:
            identities = self._identities(email, None) + self._identities(None, phone)

        peppers = pepper_candidates(self.settings.pin_pepper, self.settings.pin_pepper_prev)
        try:
            passwords = password_candidates(pin, user_id, salt_b64, peppers)
        except ValueError as e:
            logger.error(f"PIN derivation failed for user {user_id}: {e}")
            raise ApiError(500, "server_error")
        matched = self._sign_in(identities, passwords)
        if matched is None:
            logger.info(f"PIN login rejected for {mask_identifier(identifier)}")
            raise ApiError(401, "invalid_pin", "Invalid PIN for this account")
        session, password = matched
        if password != passwords[0]:
            self._upgrade_password(user_id, passwords[0])
        self.jar.set_session(session)
        return session

    def _upgrade_password(self, user_id: str, password: str):
        """Move an account signed in through a legacy derivation or old pepper onto the current one."""
        try:
            self.admin.auth.admin.update_user_by_id(user_id, {"password": password})
        except Exception as e:
            logger.warning(f"PIN password upgrade failed for user {user_id}, will retry on next login: {e}")
            return
        logger.info(f"Upgraded PIN password derivation for user {user_id}")

    def _find_profile(self, method: str, identifier: str) -> Optional[dict]:
        query = self.admin.table("profiles").select("user_id, email, phone")
        if method == "email":
            query = query.eq("email", identifier)
        else:
            # Older profile rows store the national 0-prefixed form
            zero_form = "0" + identifier[len("+977"):]
            query = query.or_(f"phone.eq.{identifier},phone.eq.{zero_form}")
        return row_or_none(query.maybe_single().execute())

    @staticmethod
    def _identities(email: Optional[str], phone: Optional[str]) -> List[Tuple[str, str]]:
        identities = []
        if email:
            identities.append(("email", email))
        if phone:
            identities.append(("phone", phone))
        return identities

    def _sign_in(
        self, identities: List[Tuple[str, str]], passwords: List[str]
    ) -> Optional[Tuple[Session, str]]:
        for password in passwords:
            for kind, value in identities:
                try:
                    response = self.supabase.auth.sign_in_with_password({kind: value, "password": password})
                except AuthError:
                    continue
                if response and response.session:
                    return Session.from_provider(response.session, response.user), password
        return None
