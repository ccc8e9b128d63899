"""
Harbor Permission System
========================

Every tool call the model requests passes through Harbor before it runs:

1. The policy store loads the current trust policy
2. The decision engine returns auto-approve, ask or deny
3. "ask" suspends on the permission gate until the user answers
   (or the timeout denies)
4. Remembered answers are written back to the policy
5. The action log records what happened

This module provides:
- PermissionPolicy and its mutation helpers
- decide(): the pure decision engine
- PolicyStore: file-backed policy persistence
- PermissionGate: timed human approval
- ActionLog: bounded audit trail
"""

from src.harbor.audit import ActionLog, ActionLogEntry, JSONLActionSink, Outcome
from src.harbor.engine import decide, escalate_critical, is_critical_action
from src.harbor.gate import ConsolePrompter, PendingPermissions, PermissionGate, PermissionRequest
from src.harbor.policy import (
    Decision,
    PermissionPolicy,
    PermissionTier,
    SiteTrust,
    ToolOverride,
    TrustLevel,
    UserDecision,
    default_policy,
)
from src.harbor.store import PolicyStore

__all__ = [
    "ActionLog",
    "ActionLogEntry",
    "ConsolePrompter",
    "Decision",
    "JSONLActionSink",
    "Outcome",
    "PendingPermissions",
    "PermissionGate",
    "PermissionPolicy",
    "PermissionRequest",
    "PermissionTier",
    "PolicyStore",
    "SiteTrust",
    "ToolOverride",
    "TrustLevel",
    "UserDecision",
    "decide",
    "default_policy",
    "escalate_critical",
    "is_critical_action",
]
