"""Error taxonomy shared by the session, loader and mutator layers."""
from __future__ import annotations

from typing import Optional


class BabyCareError(Exception):
    code = "unknown"
    status_code = 500
    default_message = "Unexpected error."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(BabyCareError):
    code = "not_found"
    status_code = 404
    default_message = "Not found."


class PhoneNotFound(NotFound):
    code = "phone_not_found"
    default_message = "Phone number not found. Check the number or sign up."


class RecordNotFound(NotFound):
    code = "record_not_found"
    default_message = "No record was found."


class Conflict(BabyCareError):
    code = "conflict"
    status_code = 409
    default_message = "Conflict."


class PhoneTaken(Conflict):
    code = "phone_taken"
    default_message = "This phone number is already registered. Sign in or use another number."


class ActivityInProgress(Conflict):
    code = "activity_in_progress"
    default_message = "This activity is already in progress for this baby."


class LegacyAccount(BabyCareError):
    code = "legacy_account"
    status_code = 409
    default_message = "Legacy account detected. Contact support to migrate it."


class AuthFailed(BabyCareError):
    code = "auth_failed"
    status_code = 401
    default_message = "Invalid phone number or password."


class CaregiverRequired(BabyCareError):
    code = "caregiver_required"
    status_code = 401
    default_message = "Sign in before recording activities."


class DiaperDetailsRequired(BabyCareError):
    code = "details_required"
    status_code = 422
    default_message = "Solid diapers need the full form to record the consistency."


class SelfDeleteForbidden(BabyCareError):
    code = "self_delete_forbidden"
    status_code = 403
    default_message = "You cannot delete your own caregiver account."


class SupabaseError(BabyCareError):
    """Backend call failed; the message is surfaced verbatim."""

    code = "supabase_error"
    status_code = 502

    def __init__(self, message: Optional[str] = None, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class TransientNetwork(SupabaseError):
    code = "network_error"
    status_code = 503
    default_message = "Network error while contacting the backend."


NETWORK_HINTS = ("fetch", "network")


def is_transient(exc: BaseException) -> bool:
    """True for failures that look like connectivity problems."""
    if isinstance(exc, TransientNetwork):
        return True
    message = str(exc).lower()
    return any(hint in message for hint in NETWORK_HINTS)
