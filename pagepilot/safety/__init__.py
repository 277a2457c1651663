from .permission_service import (
    ActionType,
    PermissionCheck,
    PermissionConfig,
    PermissionLevel,
    PermissionRule,
    PermissionService,
)

__all__ = [
    "ActionType",
    "PermissionCheck",
    "PermissionConfig",
    "PermissionLevel",
    "PermissionRule",
    "PermissionService",
]
