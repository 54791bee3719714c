from fastapi import HTTPException

from payments.errors import (
    AuthenticationError,
    GatewayConfigurationError,
    GatewayRequestError,
    GatewayTimeoutError,
    InvalidStateError,
    PaymentGatewayError,
)


def gateway_http_error(exc: PaymentGatewayError) -> HTTPException:
    """Translate a gateway failure into the HTTP error returned to API clients."""
    if isinstance(exc, InvalidStateError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, GatewayConfigurationError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, GatewayTimeoutError):
        return HTTPException(status_code=504, detail=str(exc))
    if isinstance(exc, (AuthenticationError, GatewayRequestError)):
        return HTTPException(
            status_code=502,
            detail={
                "error": type(exc).__name__,
                "message": exc.args[0],
                "psp_status": exc.status_code,
                "psp_body": exc.body,
            },
        )
    return HTTPException(status_code=500, detail=str(exc))
