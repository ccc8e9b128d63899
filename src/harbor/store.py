"""
Policy Store
============

File-backed persistence for the Harbor policy.

The policy is read at the start of every permission decision and written
only when the user makes a remembered choice (allow for site, allow for
session, deny everywhere) or edits trust settings.

Concurrency:
    - Reads take no lock. Writes replace the file atomically (write to a
      temporary file, then rename), so a reader sees either the old or
      the new document, never half of one.
    - Writes are serialized by an asyncio.Lock around the whole
      load-mutate-save cycle, so two quick decisions for different sites
      cannot overwrite each other.

File I/O runs in a worker thread (asyncio.to_thread).
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Callable, TypeVar

from src.harbor.policy import (
    PermissionPolicy,
    SESSION_GRANT_HOURS,
    UserDecision,
    apply_user_decision,
    default_policy,
    purge_expired,
)
from src.utils.logger import Logger

logger = Logger("Harbor").child("Store")

T = TypeVar("T")


class PolicyStore:
    """
    Loads and saves the policy document.

    Example:
        store = PolicyStore(Path("~/.foxagent/harbor_policy.json"))

        policy = await store.load()

        # Read-modify-write under the writer lock
        await store.update(lambda p: set_site_trust(p, "example.com", "full"))
    """

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()
        self._write_lock = asyncio.Lock()

    async def load(self) -> PermissionPolicy:
        """Load the current policy (the default policy if none is stored)."""
        return await asyncio.to_thread(self._load_sync)

    async def save(self, policy: PermissionPolicy) -> None:
        """Replace the stored policy."""
        async with self._write_lock:
            await asyncio.to_thread(self._save_sync, policy)

    async def update(self, mutator: Callable[[PermissionPolicy], T]) -> T:
        """
        Apply a mutation to the latest stored policy and save it.

        Args:
            mutator: Function that mutates the policy in place

        Returns:
            Whatever the mutator returned
        """
        async with self._write_lock:
            policy = await asyncio.to_thread(self._load_sync)
            result = mutator(policy)
            await asyncio.to_thread(self._save_sync, policy)
            return result

    async def record_user_decision(
        self,
        tool_name: str,
        site: str,
        decision: UserDecision,
        session_hours: int = SESSION_GRANT_HOURS
    ) -> None:
        """Persist a remembered answer from the permission prompt."""
        if not decision.persists:
            return

        await self.update(
            lambda policy: apply_user_decision(
                policy, tool_name, site, decision, session_hours=session_hours
            )
        )
        logger.info(f"Stored '{decision.value}' for {tool_name} on {site}")

    async def purge_expired(self) -> int:
        """Remove expired site grants. Returns the number removed."""
        removed = await self.update(purge_expired)
        if removed:
            logger.info(f"Purged {removed} expired site grant(s)")
        return removed

    def _load_sync(self) -> PermissionPolicy:
        if not self.path.exists():
            return default_policy()

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read policy file {self.path}, using defaults", e)
            return default_policy()

        if not isinstance(data, dict):
            logger.warning(f"Policy file {self.path} is not a JSON object, using defaults")
            return default_policy()

        try:
            return PermissionPolicy.from_dict(data)
        except (AttributeError, TypeError, ValueError) as e:
            logger.error(f"Policy file {self.path} has an unexpected shape, using defaults", e)
            return default_policy()

    def _save_sync(self, policy: PermissionPolicy) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(policy.to_dict(), f, indent=2)
        os.replace(tmp_path, self.path)
