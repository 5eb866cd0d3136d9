"""Tests for concurrent resolution from one container."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Annotated

from ctxwire import ComponentContext, Composition, Container, CtxWireInstantiationError, Qualifier, component


@dataclass(frozen=True)
class Region(Qualifier, composition=Composition.LAST):
    name: str


class Counter:
    def __init__(self) -> None:
        self.value = 0
        self._lock = threading.Lock()

    def increment(self) -> None:
        with self._lock:
            self.value += 1


class SlowService:
    def __init__(self, counter: Counter) -> None:
        counter.increment()
        time.sleep(0.05)


@component(context=[Region])
class RegionalService:
    def __init__(self, counter: Counter, context: ComponentContext) -> None:
        counter.increment()
        time.sleep(0.01)
        self.region = context.get(Region)


class Client:
    def __init__(self, service: Annotated[RegionalService, Region("eu")]) -> None:
        self.service = service


def test_concurrent_resolution_builds_singleton_once(container: Container) -> None:
    container.bind(Counter)
    container.bind(SlowService)
    barrier = threading.Barrier(8)

    def resolve() -> SlowService:
        barrier.wait()
        return container.resolve(SlowService)

    with ThreadPoolExecutor(max_workers=8) as executor:
        results = list(executor.map(lambda _: resolve(), range(8)))

    assert all(result is results[0] for result in results)
    assert container.resolve(Counter).value == 1


def test_concurrent_resolution_keeps_contexts_apart(container: Container) -> None:
    container.bind(Counter)
    container.bind(RegionalService)
    names = ["eu", "us", "ap", "eu", "us", "ap"]
    barrier = threading.Barrier(len(names))

    def resolve(name: str) -> RegionalService:
        barrier.wait()
        return container.resolve(RegionalService, tags=[Region(name)])

    with ThreadPoolExecutor(max_workers=len(names)) as executor:
        results = list(executor.map(resolve, names))

    assert [result.region for result in results] == [Region(name) for name in names]
    assert results[0] is results[3]
    assert results[0] is not results[1]
    assert container.resolve(Counter).value == 3


def test_concurrent_dependents_share_dependency(container: Container) -> None:
    container.bind(Counter)
    container.bind(RegionalService)
    container.bind(Client, stateful=True)
    barrier = threading.Barrier(6)

    def resolve() -> Client:
        barrier.wait()
        return container.resolve(Client)

    with ThreadPoolExecutor(max_workers=6) as executor:
        clients = list(executor.map(lambda _: resolve(), range(6)))

    assert len({id(client) for client in clients}) == 6
    assert all(client.service is clients[0].service for client in clients)
    assert clients[0].service.region == Region("eu")


def test_resolution_chains_are_per_thread(container: Container) -> None:
    container.bind(Counter)
    container.bind(SlowService)
    container.bind(RegionalService)
    errors: list[Exception] = []

    def resolve(api: type) -> None:
        try:
            container.resolve(api, tags=[Region("eu")])
        except Exception as error:  # noqa: BLE001
            errors.append(error)

    threads = [
        threading.Thread(target=resolve, args=(api,))
        for api in (SlowService, RegionalService) * 5
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert not errors


def test_unlocked_container_caches_singletons(unlocked_container: Container) -> None:
    unlocked_container.bind(Counter)
    unlocked_container.bind(SlowService)

    assert unlocked_container.resolve(SlowService) is unlocked_container.resolve(SlowService)
    assert unlocked_container.resolve(Counter).value == 1


class Other:
    pass


class Spawner:
    def __init__(self, container: Container) -> None:
        found: list[Other] = []
        worker = threading.Thread(target=lambda: found.append(container.resolve(Other)))
        worker.start()
        worker.join(timeout=2)
        self.worker_finished = not worker.is_alive()
        self.other = found[0] if found else None


def test_constructor_may_wait_on_another_thread_resolving_other_key(container: Container) -> None:
    container.bind(Other)
    container.bind(Spawner)

    spawner = container.resolve(Spawner)

    assert spawner.worker_finished
    assert spawner.other is container.resolve(Other)


class Rendezvous:
    barrier = threading.Barrier(2, timeout=2)


class LeftService:
    def __init__(self) -> None:
        Rendezvous.barrier.wait()


class RightService:
    def __init__(self) -> None:
        Rendezvous.barrier.wait()


def test_different_keys_are_built_in_parallel(container: Container) -> None:
    Rendezvous.barrier = threading.Barrier(2, timeout=2)
    container.bind(LeftService)
    container.bind(RightService)

    with ThreadPoolExecutor(max_workers=2) as executor:
        left = executor.submit(container.resolve, LeftService)
        right = executor.submit(container.resolve, RightService)

        assert isinstance(left.result(), LeftService)
        assert isinstance(right.result(), RightService)


class Unstable:
    attempts = 0
    lock = threading.Lock()

    def __init__(self) -> None:
        with Unstable.lock:
            Unstable.attempts += 1
            attempt = Unstable.attempts
        time.sleep(0.02)
        if attempt == 1:
            msg = "first construction fails"
            raise RuntimeError(msg)


def test_concurrent_callers_retry_after_failed_construction(container: Container) -> None:
    Unstable.attempts = 0
    container.bind(Unstable)
    barrier = threading.Barrier(6)

    def resolve() -> Unstable | None:
        barrier.wait()
        try:
            return container.resolve(Unstable)
        except CtxWireInstantiationError:
            return None

    with ThreadPoolExecutor(max_workers=6) as executor:
        results = list(executor.map(lambda _: resolve(), range(6)))

    built = [result for result in results if result is not None]
    assert results.count(None) == 1
    assert all(result is built[0] for result in built)
    assert Unstable.attempts == 2
