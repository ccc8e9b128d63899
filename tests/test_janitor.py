from __future__ import annotations

import asyncio
import time
from pathlib import Path

from src.harbor.janitor import JOB_ID, PolicyJanitor
from src.harbor.policy import default_policy, set_site_trust
from src.harbor.store import PolicyStore
from src.memory.page_cache import PageCache, PageSnapshot


def test_sweep_purges_grants_and_page_cache(policy_store: PolicyStore, tmp_path: Path) -> None:
    cache = PageCache(tmp_path / "cache.json", ttl_seconds=60)
    policy = default_policy()
    set_site_trust(policy, "old.example", "interact", expires_at=time.time() - 5)
    set_site_trust(policy, "kept.example", "interact")

    async def scenario():
        await policy_store.save(policy)
        await cache.put(PageSnapshot(url="https://fresh.example", title="", markdown=""))
        await cache.put(PageSnapshot(url="https://stale.example", title="", markdown="",
                                     timestamp=time.time() - 30))
        cache.ttl_seconds = 10
        removed = await PolicyJanitor(policy_store, cache).sweep()
        return removed, await policy_store.load()

    removed, reloaded = asyncio.run(scenario())

    assert removed == 1
    assert set(reloaded.trusted_sites) == {"kept.example"}
    assert '"https://stale.example"' not in (tmp_path / "cache.json").read_text(encoding="utf-8")


def test_sweep_survives_failures(tmp_path: Path) -> None:
    class BrokenStore:
        async def purge_expired(self) -> int:
            raise OSError("read-only file system")

    janitor = PolicyJanitor(BrokenStore())  # type: ignore[arg-type]

    assert asyncio.run(janitor.sweep()) == 0


def test_start_schedules_one_job(policy_store: PolicyStore) -> None:
    janitor = PolicyJanitor(policy_store, interval_minutes=0)

    async def scenario():
        janitor.start()
        janitor.start()
        jobs = janitor.scheduler.get_jobs()
        janitor.stop()
        return jobs

    jobs = asyncio.run(scenario())

    assert [job.id for job in jobs] == [JOB_ID]
    assert janitor.interval_minutes == 1
