"""Tests for the work queue."""

import asyncio

from chart_operator.controller import WorkQueue


async def test_deduplicate() -> None:
    """Test a key added several times is processed once."""
    queue = WorkQueue()
    queue.add("kube-system/coredns")
    queue.add("kube-system/coredns")
    queue.add("kube-system/node-exporter")
    assert len(queue) == 2

    assert await queue.get() == "kube-system/coredns"
    assert await queue.get() == "kube-system/node-exporter"
    assert len(queue) == 0


async def test_add_while_processing() -> None:
    """Test a key added while being processed is processed again afterwards."""
    queue = WorkQueue()
    queue.add("kube-system/coredns")
    key = await queue.get()

    queue.add(key)
    assert len(queue) == 0

    queue.done(key)
    assert len(queue) == 1
    assert await queue.get() == key


async def test_done_without_add() -> None:
    """Test a processed key is not requeued on its own."""
    queue = WorkQueue()
    queue.add("kube-system/coredns")
    queue.done(await queue.get())
    assert len(queue) == 0


async def test_add_after() -> None:
    """Test a key is added once the delay passed."""
    queue = WorkQueue()
    queue.add_after("kube-system/coredns", 0.01)
    assert queue.scheduled == {"kube-system/coredns"}
    assert len(queue) == 0

    key = await asyncio.wait_for(queue.get(), timeout=5)
    assert key == "kube-system/coredns"
    assert queue.scheduled == set()


async def test_add_after_keeps_earliest() -> None:
    """Test the earliest of two requeues of the same key wins."""
    queue = WorkQueue()
    queue.add_after("kube-system/coredns", 600)
    queue.add_after("kube-system/coredns", 0.01)
    queue.add_after("kube-system/coredns", 300)
    assert await asyncio.wait_for(queue.get(), timeout=5) == "kube-system/coredns"
    assert queue.scheduled == set()


async def test_add_after_no_delay() -> None:
    """Test a requeue without delay adds the key right away."""
    queue = WorkQueue()
    queue.add_after("kube-system/coredns", 0)
    assert len(queue) == 1
    assert queue.scheduled == set()


async def test_wait_idle() -> None:
    """Test waiting until every key was processed."""
    queue = WorkQueue()
    await asyncio.wait_for(queue.wait_idle(), timeout=1)

    queue.add("kube-system/coredns")
    queue.add_after("kube-system/node-exporter", 0.01)
    idle = asyncio.create_task(queue.wait_idle())

    for _ in range(2):
        key = await asyncio.wait_for(queue.get(), timeout=5)
        assert not idle.done()
        queue.done(key)

    await asyncio.wait_for(idle, timeout=1)


async def test_shutdown() -> None:
    """Test a queue that was shut down ignores new keys and cancels requeues."""
    queue = WorkQueue()
    queue.add_after("kube-system/coredns", 0.01)
    queue.shutdown()
    assert queue.scheduled == set()

    queue.add("kube-system/node-exporter")
    queue.add_after("kube-system/node-exporter", 0.01)
    assert len(queue) == 0
    await asyncio.sleep(0.05)
    assert len(queue) == 0
