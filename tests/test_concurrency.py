import threading

import pytest

from redshelve import Model, UniqueIndexViolation, attribute


class Account(Model):
    handle = attribute(unique=True)
    team = attribute(index=True)


def _run_workers(worker, worker_count):
    errors = []

    def guarded(worker_id: int) -> None:
        try:
            worker(worker_id)
        except Exception as exc:  # pragma: no cover - debugging aid
            errors.append(exc)

    threads = [threading.Thread(target=guarded, args=(wid,)) for wid in range(worker_count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    if errors:
        raise AssertionError(f"worker failures: {errors!r}")


@pytest.mark.parametrize("worker_count", [2, 8])
def test_racing_saves_on_a_unique_value(store, worker_count):
    barrier = threading.Barrier(worker_count)
    outcomes = []
    lock = threading.Lock()

    def worker(worker_id: int) -> None:
        account = Account(handle="taken", team=f"team-{worker_id}")
        barrier.wait()
        try:
            account.save()
        except UniqueIndexViolation as exc:
            result = ("violation", exc.attribute)
        else:
            result = ("saved", account.id)
        with lock:
            outcomes.append(result)

    _run_workers(worker, worker_count)

    saved = [value for kind, value in outcomes if kind == "saved"]
    violations = [value for kind, value in outcomes if kind == "violation"]
    assert len(saved) == 1
    assert violations == ["handle"] * (worker_count - 1)
    assert store.hgetall("Account:uniques:handle") == {"taken": saved[0]}
    assert store.smembers("Account:all") == {saved[0]}


def test_concurrent_creates_get_distinct_ids(store):
    worker_count = 8
    per_worker = 25
    created = []
    lock = threading.Lock()

    def worker(worker_id: int) -> None:
        for i in range(per_worker):
            account = Account.create(handle=f"user-{worker_id}-{i}", team=f"team-{worker_id % 2}")
            with lock:
                created.append(account.id)

    _run_workers(worker, worker_count)

    assert len(created) == len(set(created)) == worker_count * per_worker
    assert store.scard("Account:all") == worker_count * per_worker
    assert Account.find(team="team-0").size() == worker_count // 2 * per_worker
    assert Account.find(team="team-1").size() == worker_count // 2 * per_worker
