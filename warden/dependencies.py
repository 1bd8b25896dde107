"""FastAPI dependency injection providers."""

import secrets
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status

from .config import WardenConfig, get_config
from .database import get_session_factory
from .utils.logging import get_logger

_dep_logger = get_logger("dependencies")

ADMIN_KEY_HEADER = "X-Admin-Key"

_config_instance: WardenConfig | None = None
_protection_service = None
_retention_manager = None


def get_app_config() -> WardenConfig:
    """Get the application config singleton."""
    global _config_instance
    if _config_instance is None:
        _config_instance = get_config()
    return _config_instance


def get_protection_service():
    """Get or create the ProtectionService singleton."""
    global _protection_service
    if _protection_service is None:
        from .engine.protection import ProtectionService

        config = get_app_config()
        _protection_service = ProtectionService(config, get_session_factory(config))
    return _protection_service


def get_retention_manager():
    """Get or create the RetentionManager singleton."""
    global _retention_manager
    if _retention_manager is None:
        from .maintenance.retention import RetentionManager

        _retention_manager = RetentionManager(
            access_log=get_protection_service().access_log,
            config=get_app_config(),
        )
    return _retention_manager


def is_admin_key(provided: Optional[str], config: WardenConfig) -> bool:
    """Constant-time comparison against the configured admin key."""
    if not config.admin_api_key or not provided:
        return False
    return secrets.compare_digest(provided.encode("utf-8"), config.admin_api_key.encode("utf-8"))


async def require_admin(
    x_admin_key: Annotated[Optional[str], Header(alias=ADMIN_KEY_HEADER)] = None,
    config: WardenConfig = Depends(get_app_config),
) -> None:
    """Reject requests without a valid admin key."""
    if not config.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API is disabled: no admin key configured",
        )
    if not is_admin_key(x_admin_key, config):
        _dep_logger.warning("admin_key_rejected", provided=bool(x_admin_key))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin key",
        )
