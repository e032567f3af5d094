"""End-to-end tests for aemeye.pipeline.runner with faked HTTP."""
import asyncio
import io
import threading
import time

import pytest
import requests

from aemeye.config import ProbeConfig
from aemeye.models import JobResult
from aemeye.patterns import PatternSet
from aemeye.pipeline import (
    CallbackSink, MemorySink, Pipeline, QueueSink, StdoutSink, install_scheduler_executor, run_probe,
)

PATTERNS = PatternSet({"dam": "/content/dam.*", "clientlibs": "/etc.clientlibs.*"})


def _config(**overrides):
    values = dict(rate=100_000, concurrency=4, timeout=1, thread_count=4)
    values.update(overrides)
    return ProbeConfig(**values)


class TestScenarios:
    def test_dam_body_reported_exactly_once(self, session_factory):
        out = io.StringIO()
        factory = session_factory({"http://example.test": '<a href="/content/dam/foo">x</a>'})
        stats = run_probe(["http://example.test"], _config(), PATTERNS, StdoutSink(out), session_factory=factory)
        assert out.getvalue() == "http://example.test\n"
        assert stats.matched == 1
        assert stats.stop_reason == "completed"

    def test_body_without_fingerprints_prints_nothing(self, session_factory):
        out = io.StringIO()
        factory = session_factory({"http://plain.test": "<html><body>hello</body></html>"})
        run_probe(["http://plain.test"], _config(), PATTERNS, StdoutSink(out), session_factory=factory)
        assert out.getvalue() == ""

    def test_mixed_input(self, session_factory):
        routes = {
            "http://a.test": 'href="/content/dam/1"',
            "http://b.test": 'href="/etc.clientlibs/2"',
            "http://c.test": "nothing",
            "http://timeout.test": requests.ReadTimeout("read timed out"),
            # refused.test has no route: connection refused
        }
        lines = [
            "http://a.test", "not a url", "http://refused.test", "http://timeout.test",
            "http://b.test", "http://a.test", "http://c.test",
        ]
        sink = MemorySink()
        stats = run_probe(lines, _config(), PATTERNS, sink, session_factory=session_factory(routes))
        assert sorted(sink.targets) == ["http://a.test", "http://b.test"]
        assert stats.invalid == 1
        assert stats.duplicates == 1
        assert stats.dispatched == 5
        assert stats.errors["conn"] == 2
        assert stats.errors["timeout"] == 2

    def test_output_never_exceeds_unique_targets(self, session_factory):
        hosts = [f"http://h{i}.test" for i in range(30)]
        routes = {h: 'href="/content/dam/" href="/etc.clientlibs/"' for h in hosts}
        sink = MemorySink()
        run_probe(hosts + hosts, _config(concurrency=8), PATTERNS, sink, session_factory=session_factory(routes))
        assert len(sink.targets) == len(set(sink.targets)) == 30

    def test_idempotent_matched_set(self, session_factory):
        hosts = [f"http://h{i}.test" for i in range(20)]
        routes = {h: ('href="/content/dam/"' if i % 3 == 0 else "plain") for i, h in enumerate(hosts)}
        first, second = MemorySink(), MemorySink()
        run_probe(hosts, _config(), PATTERNS, first, session_factory=session_factory(routes))
        run_probe(hosts, _config(), PATTERNS, second, session_factory=session_factory(routes))
        assert set(first.targets) == set(second.targets) == {h for i, h in enumerate(hosts) if i % 3 == 0}

    def test_each_worker_gets_private_session(self, session_factory):
        hosts = [f"http://h{i}.test" for i in range(12)]
        factory = session_factory({h: "plain" for h in hosts})
        run_probe(hosts, _config(concurrency=3), PATTERNS, MemorySink(), session_factory=factory)
        assert 1 <= len(factory.sessions) <= 3
        assert len({id(s) for s in factory.sessions}) == len(factory.sessions)
        assert all(s.closed for s in factory.sessions)


class TestSinks:
    def test_callback_sink(self, session_factory):
        seen = []
        factory = session_factory({"http://a.test": "/content/dam/"})
        run_probe(["http://a.test"], _config(), PATTERNS, CallbackSink(seen.append), session_factory=factory)
        assert seen == [JobResult("http://a.test", "dam")]

    def test_queue_sink_gets_end_marker(self, session_factory):
        factory = session_factory({"http://a.test": "/content/dam/", "http://b.test": "/content/dam/"})

        async def scenario():
            results = asyncio.Queue()
            pipeline = Pipeline(_config(), PATTERNS, QueueSink(results), session_factory=factory)
            await pipeline.run(["http://a.test", "http://b.test"])
            items = []
            while True:
                item = results.get_nowait()
                if item is None:
                    break
                items.append(item.target)
            return items

        assert sorted(asyncio.run(scenario())) == ["http://a.test", "http://b.test"]

    def test_full_queue_sink_drops_instead_of_blocking(self):
        async def scenario():
            sink = QueueSink(asyncio.Queue(maxsize=1), put_timeout=0.01)
            await sink.deliver(JobResult("http://a.test"))
            await sink.deliver(JobResult("http://b.test"))
            return sink.dropped

        assert asyncio.run(scenario()) == 1


class CountingSession:
    """Tracks how many requests are running at the same time."""

    def __init__(self, state):
        self.state = state

    def get(self, url, **kwargs):
        with self.state["lock"]:
            self.state["now"] += 1
            self.state["max"] = max(self.state["max"], self.state["now"])
        time.sleep(0.3)
        with self.state["lock"]:
            self.state["now"] -= 1
        raise requests.ConnectionError("refused")

    def close(self):
        pass


class TestParallelism:
    def test_in_flight_requests_reach_concurrency(self):
        state = {"lock": threading.Lock(), "now": 0, "max": 0}
        hosts = [f"http://h{i}.test" for i in range(16)]
        stats = run_probe(hosts, _config(concurrency=16, thread_count=2), PATTERNS, MemorySink(),
                          session_factory=lambda: CountingSession(state))
        assert state["max"] == 16
        assert stats.requests == 32

    def test_thread_count_sizes_default_executor(self):
        seen = {}

        async def scenario():
            executor = install_scheduler_executor(3)
            seen["workers"] = executor._max_workers
            seen["thread"] = await asyncio.get_running_loop().run_in_executor(
                None, lambda: threading.current_thread().name)

        asyncio.run(scenario())
        assert seen["workers"] == 3
        assert seen["thread"].startswith("aemeye-sched")


class SlowSession:
    """Every request blocks until released or the test ends."""

    def __init__(self, gate):
        self.gate = gate

    def get(self, url, **kwargs):
        self.gate.wait(timeout=5)
        raise requests.ConnectionError("gave up")

    def close(self):
        pass


class TestCancellation:
    def test_cancel_stops_run_without_waiting_for_requests(self):
        gate = threading.Event()
        hosts = [f"http://h{i}.test" for i in range(50)]

        async def scenario():
            pipeline = Pipeline(_config(concurrency=4, thread_count=4), PATTERNS, MemorySink(),
                                session_factory=lambda: SlowSession(gate))
            task = asyncio.create_task(pipeline.run(hosts))
            await asyncio.sleep(0.1)
            started = time.monotonic()
            pipeline.cancel()
            stats = await asyncio.wait_for(task, timeout=2)
            return stats, time.monotonic() - started

        try:
            stats, took = asyncio.run(scenario())
        finally:
            gate.set()
        assert stats.stop_reason == "cancelled"
        assert took < 1.0
        assert stats.matched == 0

    def test_max_runtime_deadline(self):
        gate = threading.Event()
        hosts = [f"http://h{i}.test" for i in range(50)]
        try:
            stats = run_probe(hosts, _config(max_runtime=0.2), PATTERNS, MemorySink(),
                              session_factory=lambda: SlowSession(gate))
        finally:
            gate.set()
        assert stats.stop_reason == "deadline"
        assert stats.cancelled

    def test_pipeline_is_single_use(self, session_factory):
        factory = session_factory({})

        async def scenario():
            pipeline = Pipeline(_config(), PATTERNS, MemorySink(), session_factory=factory)
            await pipeline.run([])
            with pytest.raises(RuntimeError):
                await pipeline.run([])

        asyncio.run(scenario())
