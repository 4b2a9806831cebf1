"""
Tests for concurrent access to the repositories.

Validates:
    - Concurrent update_state calls on one draft never lose an update
    - Concurrent creates all end up in the summary index
    - Lazily built repositories are created exactly once
    - LockRegistry hands out one lock per key
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from draftstore.locks import LockRegistry


THREADS = 8
PUSHES_PER_THREAD = 5


def _push_skills(repo, entity_id, worker):
    for n in range(PUSHES_PER_THREAD):
        report = repo.update_state(entity_id, {"skills_push": {"id": f"skill_{worker}_{n}"}})
        assert report.ok


# ---------------------------------------------------------------------------
# Same-entity writers
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("store_fixture", ["store", "sqlite_store"])
class TestConcurrentUpdates:
    """Writers on the same draft serialise and keep every change."""

    def test_no_lost_pushes(self, request, store_fixture):
        repo = request.getfixturevalue(store_fixture).solutions
        sol = repo.create("Busy solution")

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            futures = [pool.submit(_push_skills, repo, sol["id"], w) for w in range(THREADS)]
            for future in futures:
                future.result()

        ids = {s["id"] for s in repo.load(sol["id"])["skills"]}
        assert len(ids) == THREADS * PUSHES_PER_THREAD

    def test_updates_and_messages_interleave(self, request, store_fixture):
        repo = request.getfixturevalue(store_fixture).solutions
        sol = repo.create("Chatty solution")

        def talk(worker):
            for n in range(PUSHES_PER_THREAD):
                repo.append_message(sol["id"], {"role": "user", "content": f"{worker}-{n}"})

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            futures = [pool.submit(talk, w) for w in range(THREADS // 2)]
            futures += [pool.submit(_push_skills, repo, sol["id"], w) for w in range(THREADS // 2)]
            for future in futures:
                future.result()

        final = repo.load(sol["id"])
        assert len(final["conversation"]) == (THREADS // 2) * PUSHES_PER_THREAD
        assert len(final["skills"]) == (THREADS // 2) * PUSHES_PER_THREAD

    def test_concurrent_creates_all_listed(self, request, store_fixture):
        repo = request.getfixturevalue(store_fixture).skills

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            created = list(pool.map(lambda n: repo.create(f"Skill {n}"), range(THREADS * 2)))

        listed = {row["id"] for row in repo.list()}
        assert listed == {s["id"] for s in created}


# ---------------------------------------------------------------------------
# Lazy construction and locks
# ---------------------------------------------------------------------------

class TestLazyConstruction:
    """StoreManager builds each repository once even under contention."""

    def test_single_repository_instance(self, store):
        barrier = threading.Barrier(THREADS)
        seen = []

        def grab():
            barrier.wait()
            seen.append(store.repository("solution"))

        threads = [threading.Thread(target=grab) for _ in range(THREADS)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len({id(repo) for repo in seen}) == 1

    def test_kinds_share_lock_registry(self, store):
        assert store.skills.locks is store.solutions.locks


class TestLockRegistry:
    """Tests for LockRegistry."""

    def test_same_key_same_lock(self):
        locks = LockRegistry()
        assert locks.get("a") is locks.get("a")
        assert locks.get("a") is not locks.get("b")
        assert len(locks) == 2

    def test_lock_is_reentrant(self):
        locks = LockRegistry()
        with locks.lock("a"):
            with locks.lock("a"):
                pass
