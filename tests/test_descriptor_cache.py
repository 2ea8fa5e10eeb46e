"""Per-type descriptor caching under concurrency."""

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional

from reqbind import BindEngine, Binder, DescriptorCache, Request


@dataclass
class Leaf(Binder):
    value: int = 0

    def bind(self, request: Request) -> None:
        return None


@dataclass
class Branch(Binder):
    left: Optional[Leaf] = None
    leaves: List[Leaf] = field(default_factory=list)
    label: str = ""
    right: Leaf | None = None

    def bind(self, request: Request) -> None:
        return None


def test_descriptor_lists_binder_members_in_order() -> None:
    cache = DescriptorCache()
    assert cache.get(Branch) == ("left", "right")
    assert Branch in cache
    assert cache.get(Leaf) == ()
    assert len(cache) == 2


def test_descriptor_is_reused() -> None:
    cache = DescriptorCache()
    first = cache.get(Branch)
    assert cache.get(Branch) is first


def test_concurrent_first_use_is_idempotent() -> None:
    cache = DescriptorCache()
    barrier = threading.Barrier(16)

    def compute(_):
        barrier.wait()
        return cache.get(Branch)

    with ThreadPoolExecutor(max_workers=16) as pool:
        results = list(pool.map(compute, range(16)))

    assert all(result is results[0] for result in results)
    assert len(cache) == 1


def test_concurrent_actions_share_one_engine(engine: BindEngine, make_request) -> None:
    def run(i: int) -> Branch:
        target = Branch()
        body = f'{{"left":{{"value":{i}}},"label":"b{i}"}}'.encode()
        engine.action(make_request(body, "application/json"), target)
        return target

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(run, range(64)))

    for i, target in enumerate(results):
        assert target.label == f"b{i}"
        assert target.left == Leaf(value=i)
    assert Branch in engine.descriptors
