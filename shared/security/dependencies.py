from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader
from .api_key import ADMIN_API_KEY, verify_api_key

# Defines the expected internal service header
api_key_header = APIKeyHeader(name="X-Internal-API-Key", auto_error=False)

# Admin-only operations (hard order deletion) need a second key
admin_key_header = APIKeyHeader(name="X-Admin-API-Key", auto_error=False)

async def verify_internal_api_key(api_key: str = Depends(api_key_header)) -> bool:
    """Dependency to validate service-to-service internal requests."""
    if not verify_api_key(api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing X-Internal-API-Key header"
        )
    return True

async def verify_admin_api_key(api_key: str = Depends(admin_key_header)) -> bool:
    """Dependency guarding admin-privileged endpoints."""
    if not verify_api_key(api_key, ADMIN_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing X-Admin-API-Key header"
        )
    return True
