from __future__ import annotations


class BillingError(Exception):
    """Base class for subscription-engine failures.

    ``code`` is a short machine-readable token (``"invalid_reference"``,
    ``"claim_not_pending"``...) that the HTTP layer returns as the detail.
    """

    status_code = 400

    def __init__(self, code: str, message: str | None = None) -> None:
        super().__init__(message or code)
        self.code = code
        self.message = message or code


class ValidationError(BillingError):
    status_code = 400


class NotFoundError(BillingError):
    status_code = 404


class InvalidStateError(BillingError):
    status_code = 409


class VerificationIncompleteError(BillingError):
    status_code = 503


class TransportError(BillingError):
    status_code = 502
