"""Tests for concurrent resolution of open generic registrations."""

from __future__ import annotations

import threading
import time
from typing import Generic, TypeVar

from interwire.container import Container
from interwire.providers import Lifetime

T = TypeVar("T")

_THREAD_COUNT = 16


class _Order:
    pass


class _Product:
    pass


class _Cache(Generic[T]):
    pass


class _SlowCache(_Cache[T]):
    constructed = 0
    constructed_lock = threading.Lock()

    def __init__(self) -> None:
        time.sleep(0.01)
        with _SlowCache.constructed_lock:
            _SlowCache.constructed += 1


def _resolve_concurrently(container: Container, service_type: object) -> tuple[list[object], list[Exception]]:
    barrier = threading.Barrier(_THREAD_COUNT)
    results: list[object] = []
    errors: list[Exception] = []

    def resolve_service() -> None:
        barrier.wait()
        try:
            results.append(container.resolve(service_type))
        except Exception as e:  # noqa: BLE001
            errors.append(e)

    threads = [threading.Thread(target=resolve_service) for _ in range(_THREAD_COUNT)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


def test_concurrent_singleton_open_generic_constructs_once() -> None:
    _SlowCache.constructed = 0
    container = Container()
    container.register_open_generic(_Cache, _SlowCache, lifetime=Lifetime.SINGLETON)

    results, errors = _resolve_concurrently(container, _Cache[_Order])

    assert not errors
    assert len(results) == _THREAD_COUNT
    assert all(result is results[0] for result in results)
    assert _SlowCache.constructed == 1


def test_concurrent_singleton_open_generic_keeps_closed_types_apart() -> None:
    _SlowCache.constructed = 0
    container = Container()
    container.register_open_generic(_Cache, _SlowCache, lifetime=Lifetime.SINGLETON)

    orders, order_errors = _resolve_concurrently(container, _Cache[_Order])
    products, product_errors = _resolve_concurrently(container, _Cache[_Product])

    assert not order_errors
    assert not product_errors
    assert orders[0] is not products[0]
    assert _SlowCache.constructed == 2


def test_concurrent_transient_open_generic_registers_one_producer() -> None:
    container = Container()
    container.register_open_generic(_Cache, _SlowCache)

    results, errors = _resolve_concurrently(container, _Cache[_Order])

    assert not errors
    assert len({id(result) for result in results}) == _THREAD_COUNT
    producer = container.get_registration(_Cache[_Order])
    assert producer is not None
    assert container.get_registration(_Cache[_Order]) is producer
