from fastapi import HTTPException

from subscription_engine.services.errors import BillingError


def http_error(exc: BillingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.code)
