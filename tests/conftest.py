from __future__ import annotations

from pathlib import Path

import pytest

from src.harbor.store import PolicyStore


@pytest.fixture()
def policy_store(tmp_path: Path) -> PolicyStore:
    return PolicyStore(tmp_path / "harbor_policy.json")
