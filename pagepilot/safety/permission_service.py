"""
Permission Service - gates automation actions by permission level.

Evaluation order for ``check_action``:
blacklist, whitelist, custom rules, then the active level.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..utils.logging import log_event

logger = logging.getLogger(__name__)


class PermissionLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ActionType(str, Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    EXECUTE = "execute"
    NAVIGATE = "navigate"
    SEND = "send"


DESTRUCTIVE_ACTION_TYPES = {ActionType.DELETE, ActionType.EXECUTE}


class PermissionConfig(BaseModel):
    level: PermissionLevel = PermissionLevel.MEDIUM
    dangerous_actions: List[str] = Field(
        default_factory=lambda: [
            "delete_file",
            "send_email",
            "make_purchase",
            "execute_code",
            "system_command",
            "delete_data",
            "modify_settings",
        ]
    )
    whitelist: List[str] = Field(default_factory=list)
    blacklist: List[str] = Field(default_factory=list)
    auto_approve: List[str] = Field(
        default_factory=lambda: ["read", "navigate", "scroll", "click"]
    )


class PermissionRule(BaseModel):
    action: str
    resource: Optional[str] = None
    allowed: bool
    requires_confirmation: bool = False
    reason: Optional[str] = None

    @property
    def key(self) -> str:
        return _rule_key(self.action, self.resource)


@dataclass(frozen=True)
class PermissionCheck:
    allowed: bool
    requires_confirmation: bool
    reason: Optional[str] = None


class PermissionService:
    def __init__(self, config: Optional[PermissionConfig] = None):
        self.config = config or PermissionConfig()
        self._rules: Dict[str, PermissionRule] = {}

    @property
    def level(self) -> PermissionLevel:
        return self.config.level

    def set_permission_level(self, level: str) -> PermissionLevel:
        """
        Change the active level.

        Raises:
            ValueError: If ``level`` is not low, medium or high
        """
        new_level = PermissionLevel(str(level).lower())
        previous = self.config.level
        self.config.level = new_level
        log_event(
            "permission_level_changed",
            {"previous": previous.value, "level": new_level.value},
        )
        return new_level

    def check_action(
        self,
        action: str,
        resource: Optional[str] = None,
        action_type: Optional[str] = None,
    ) -> PermissionCheck:
        if self._matches_list(self.config.blacklist, action, resource):
            return PermissionCheck(False, False, "Action or resource is blacklisted")

        if self._matches_list(self.config.whitelist, action, resource):
            return PermissionCheck(True, False, "Action or resource is whitelisted")

        rule = self._rules.get(_rule_key(action, resource))
        if rule is not None:
            return PermissionCheck(rule.allowed, rule.requires_confirmation, rule.reason)

        dangerous = _contains_any(action, self.config.dangerous_actions)

        if self.config.level == PermissionLevel.LOW:
            return PermissionCheck(
                True,
                dangerous,
                "Dangerous action requires confirmation" if dangerous else None,
            )

        if self.config.level == PermissionLevel.MEDIUM:
            if dangerous:
                return PermissionCheck(True, True, "Dangerous action requires confirmation")
            if action_type is not None and _as_action_type(action_type) in DESTRUCTIVE_ACTION_TYPES:
                return PermissionCheck(True, True, "Destructive action requires confirmation")
            return PermissionCheck(True, False)

        auto_approved = _contains_any(action, self.config.auto_approve)
        return PermissionCheck(
            True,
            not auto_approved,
            None if auto_approved else "High security mode - confirmation required",
        )

    def add_to_whitelist(self, item: str) -> None:
        if item not in self.config.whitelist:
            self.config.whitelist.append(item)

    def add_to_blacklist(self, item: str) -> None:
        if item not in self.config.blacklist:
            self.config.blacklist.append(item)

    def remove_from_whitelist(self, item: str) -> None:
        self.config.whitelist = [i for i in self.config.whitelist if i != item]

    def remove_from_blacklist(self, item: str) -> None:
        self.config.blacklist = [i for i in self.config.blacklist if i != item]

    def add_rule(self, rule: PermissionRule) -> None:
        self._rules[rule.key] = rule
        log_event("permission_rule_added", {"rule": rule.key}, level=logging.DEBUG)

    def remove_rule(self, action: str, resource: Optional[str] = None) -> None:
        self._rules.pop(_rule_key(action, resource), None)

    def reset_config(self) -> None:
        self.config = PermissionConfig()
        self._rules.clear()
        log_event("permission_config_reset")

    @staticmethod
    def _matches_list(items: List[str], action: str, resource: Optional[str]) -> bool:
        return any(item in action or (resource and item in resource) for item in items)


def _rule_key(action: str, resource: Optional[str]) -> str:
    return f"{action}:{resource}" if resource else action


def _contains_any(action: str, needles: List[str]) -> bool:
    lowered = action.lower()
    return any(n.lower() in lowered for n in needles)


def _as_action_type(value: str) -> Optional[ActionType]:
    try:
        return ActionType(value)
    except ValueError:
        return None
