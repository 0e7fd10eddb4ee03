import logging
from fastapi import HTTPException, status

from storefront.domain.exceptions import (
    BusinessRuleError, DomainException, NotFoundError, PermissionDeniedError, RemoteServiceError,
    ValidationError, WebhookSignatureError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (WebhookSignatureError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (BusinessRuleError, status.HTTP_409_CONFLICT),
    (RemoteServiceError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def to_http_exception(error: DomainException) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            if status_code >= 500:
                logger.error(f"{type(error).__name__}: {error}")
            return HTTPException(status_code=status_code, detail=str(error))
    logger.error(f"Unmapped domain error {type(error).__name__}: {error}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
