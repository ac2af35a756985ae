"""Error taxonomy for the billing provider."""

from __future__ import annotations

from typing import Any, Dict, Optional


class BillingError(Exception):
    """Base exception for all billing failures."""

    code = "billing_error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class ConfigurationError(BillingError, RuntimeError):
    """A required secret or setting is missing; no provider can be built."""

    code = "configuration_error"


class RemoteAPIError(BillingError):
    """The payment processor rejected a call or could not be reached."""

    code = "remote_api_error"


class SignatureVerificationError(BillingError):
    """An inbound webhook payload failed signature verification."""

    code = "signature_verification_error"


class StateConflictError(BillingError):
    """The local subscription state does not allow the requested change."""

    code = "state_conflict"


class TierNotFoundError(BillingError, LookupError):
    """No tier in the catalog matches the requested id or name."""

    code = "tier_not_found"
