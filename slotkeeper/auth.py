import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from . import config
from .security_utils import constant_time_compare

logger = logging.getLogger(__name__)

# HTTPBearer scheme so Swagger-UI can attach the Authorization header globally
auth_scheme = HTTPBearer(auto_error=False)


def verify_admin(credentials: HTTPAuthorizationCredentials = Depends(auth_scheme)) -> None:
    """Validate the provider's bearer key on admin endpoints"""
    if not config.ADMIN_API_KEY:
        logger.error("❌ ADMIN_API_KEY not set - admin endpoints are disabled")
        raise HTTPException(status_code=503, detail="Admin API not configured")

    if (
        credentials is None
        or credentials.scheme.lower() != "bearer"
        or not constant_time_compare(credentials.credentials, config.ADMIN_API_KEY)
    ):
        raise HTTPException(status_code=401, detail="Invalid API key")
