"""Tests for the hook chain runner."""

from __future__ import annotations

import asyncio
import logging
import threading

import pytest

from feathers_hooks.errors import BadRequest, HookError, HookTimeoutError
from feathers_hooks.hooks import HookObject, HookPhase, Method
from feathers_hooks.hooks.chain import HookChain
from feathers_hooks.hooks.runner import ErrorPolicy, HookRunner


def _run(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


class StubService:
    """Records calls and returns a canned response (or raises)."""

    name = "messages"

    def __init__(self, response=None, error=None, log=None):
        self.response = response
        self.error = error
        self.log = log
        self.calls = []

    async def invoke(self, method, parameters=None, data=None, id=None):
        self.calls.append(
            {"method": method, "parameters": parameters, "data": data, "id": id}
        )
        if self.log is not None:
            self.log.append("invoke")
        if self.error is not None:
            raise self.error
        return self.response


class SyncService:
    name = "sync"

    def invoke(self, method, parameters=None, data=None, id=None):
        return {"method": method.value, "id": id}


APP = object()


def _make_obj(service, method: Method = Method.GET, **kwargs) -> HookObject:
    return HookObject(
        phase=HookPhase.BEFORE, app=APP, service=service, method=method, **kwargs
    )


@pytest.fixture
def chain():
    return HookChain()


# =============================================================================
# Phase transitions
# =============================================================================


class TestPhases:
    def test_no_hooks_returns_response_unmodified(self, chain):
        response = {"id": "42"}
        service = StubService(response=response)

        result = _run(HookRunner(chain).run(_make_obj(service, id="42")))

        assert result is response
        assert result == {"id": "42"}
        assert len(service.calls) == 1
        assert service.calls[0]["id"] == "42"

    def test_phase_order(self, chain):
        log = []
        service = StubService(response={"ok": True}, log=log)

        def record(obj):
            log.append(obj.phase.value)

        chain.register(HookPhase.BEFORE, "b", record)
        chain.register(HookPhase.AFTER, "a", record)
        chain.register(HookPhase.ERROR, "e", record)

        _run(HookRunner(chain).run(_make_obj(service, id="1")))
        assert log == ["before", "invoke", "after"]

    def test_hooks_run_in_registration_order(self, chain):
        order = []
        for name in "abc":
            chain.register(
                HookPhase.BEFORE, name, lambda obj, _n=name: order.append(_n)
            )

        _run(HookRunner(chain).run(_make_obj(StubService(), id="1")))
        assert order == ["a", "b", "c"]

    def test_result_absent_until_invoked(self, chain):
        seen = []
        chain.register(HookPhase.BEFORE, "check", lambda obj: seen.append(obj.result))
        chain.register(HookPhase.AFTER, "check", lambda obj: seen.append(obj.result))

        _run(HookRunner(chain).run(_make_obj(StubService(response="r"), id="1")))
        assert seen == [None, "r"]

    def test_before_hook_changes_reach_service(self, chain):
        service = StubService(response={})

        def add_query(obj):
            return obj.copy(parameters={"query": {"read": False}})

        chain.register(HookPhase.BEFORE, "add_query", add_query)
        _run(HookRunner(chain).run(_make_obj(service, method=Method.FIND)))

        assert service.calls[0]["parameters"] == {"query": {"read": False}}
        assert service.calls[0]["method"] is Method.FIND

    def test_sync_service(self, chain):
        result = _run(HookRunner(chain).run(_make_obj(SyncService(), id="5")))
        assert result == {"method": "get", "id": "5"}

    def test_method_filtered_hooks_skipped(self, chain):
        ran = []
        chain.register(
            HookPhase.BEFORE, "create_only", lambda obj: ran.append(1), methods=["create"]
        )
        _run(HookRunner(chain).run(_make_obj(StubService(), id="1")))
        assert ran == []

    def test_must_start_in_before(self, chain):
        obj = HookObject(
            phase=HookPhase.AFTER, app=APP, service=StubService(), method=Method.GET
        )
        with pytest.raises(ValueError, match="before phase"):
            _run(HookRunner(chain).run(obj))

    def test_invalid_timeout(self, chain):
        with pytest.raises(ValueError, match="positive"):
            HookRunner(chain, timeout=0)


# =============================================================================
# Error diversion
# =============================================================================


class TestErrors:
    def test_before_error_short_circuits(self, chain):
        ran = []
        service = StubService(response={})
        error = BadRequest("stop")

        chain.register(HookPhase.BEFORE, "a", lambda obj: ran.append("a"))
        chain.register(HookPhase.BEFORE, "b", lambda obj: obj.with_error(error))
        chain.register(HookPhase.BEFORE, "c", lambda obj: ran.append("c"))
        chain.register(HookPhase.AFTER, "after", lambda obj: ran.append("after"))
        chain.register(
            HookPhase.ERROR, "err", lambda obj: ran.append(("err", obj.phase, obj.error))
        )

        with pytest.raises(BadRequest) as exc_info:
            _run(HookRunner(chain).run(_make_obj(service, id="1")))

        assert exc_info.value is error
        assert ran == ["a", ("err", HookPhase.ERROR, error)]
        assert service.calls == []

    def test_service_error_runs_error_hooks(self, chain):
        seen = []
        failure = ConnectionError("down")
        service = StubService(error=failure)

        chain.register(HookPhase.AFTER, "after", lambda obj: seen.append("after"))
        chain.register(HookPhase.ERROR, "err", lambda obj: seen.append(obj.error))

        with pytest.raises(ConnectionError):
            _run(HookRunner(chain).run(_make_obj(service, id="1")))
        assert seen == [failure]

    def test_service_error_without_error_hooks(self, chain):
        service = StubService(error=KeyError("missing"))
        with pytest.raises(KeyError):
            _run(HookRunner(chain).run(_make_obj(service, id="1")))

    def test_after_error_keeps_result(self, chain):
        seen = []
        chain.register(HookPhase.AFTER, "fail", lambda obj: obj.with_error(BadRequest("bad")))
        chain.register(HookPhase.ERROR, "err", lambda obj: seen.append(obj.result))

        with pytest.raises(BadRequest):
            _run(HookRunner(chain).run(_make_obj(StubService(response="r"), id="1")))
        assert seen == ["r"]

    def test_error_hooks_transform_error(self, chain):
        chain.register(HookPhase.BEFORE, "fail", lambda obj: obj.with_error(ValueError("raw")))

        def translate(obj, next):
            next(obj.with_error(BadRequest(f"translated: {obj.error}")))

        chain.register(HookPhase.ERROR, "translate", translate)

        with pytest.raises(BadRequest, match="translated: raw"):
            _run(HookRunner(chain).run(_make_obj(StubService(), id="1")))

    def test_error_hooks_do_not_short_circuit(self, chain):
        ran = []
        chain.register(HookPhase.BEFORE, "fail", lambda obj: obj.with_error(ValueError("a")))
        chain.register(HookPhase.ERROR, "one", lambda obj: obj.with_error(ValueError("b")))
        chain.register(HookPhase.ERROR, "two", lambda obj: ran.append(str(obj.error)))

        with pytest.raises(ValueError, match="b"):
            _run(HookRunner(chain).run(_make_obj(StubService(), id="1")))
        assert ran == ["b"]

    def test_non_exception_error_wrapped(self, chain):
        chain.register(HookPhase.BEFORE, "fail", lambda obj: obj.with_error({"code": 403}))

        with pytest.raises(HookError) as exc_info:
            _run(HookRunner(chain).run(_make_obj(StubService(), id="1")))
        assert exc_info.value.error == {"code": 403}

    def test_hook_exception_diverts(self, chain):
        boom = RuntimeError("boom")
        seen = []

        def explode(obj):
            raise boom

        chain.register(HookPhase.BEFORE, "explode", explode)
        chain.register(HookPhase.ERROR, "err", lambda obj: seen.append(obj.error))
        service = StubService()

        with pytest.raises(RuntimeError) as exc_info:
            _run(HookRunner(chain).run(_make_obj(service, id="1")))
        assert exc_info.value is boom
        assert seen == [boom]
        assert service.calls == []

    def test_exception_after_next_keeps_passed_record(self, chain):
        seen = []

        def proceed_then_fail(obj, next):
            next(obj.copy(parameters={"kept": True}))
            raise RuntimeError("late")

        chain.register(HookPhase.BEFORE, "late", proceed_then_fail)
        chain.register(HookPhase.ERROR, "err", lambda obj: seen.append(obj.parameters))

        with pytest.raises(RuntimeError, match="late"):
            _run(HookRunner(chain).run(_make_obj(StubService(), id="1")))
        assert seen == [{"kept": True}]

    def test_preset_error_skips_before_and_service(self, chain):
        ran = []
        service = StubService()
        chain.register(HookPhase.BEFORE, "b", lambda obj: ran.append("before"))

        with pytest.raises(BadRequest):
            _run(HookRunner(chain).run(_make_obj(service, id="1", error=BadRequest("x"))))
        assert ran == []
        assert service.calls == []


class TestErrorPolicy:
    def _clear_error(self, obj):
        return obj.copy(error=None, result={"fallback": True})

    def test_fail_policy_raises_original(self, chain):
        original = BadRequest("original")
        chain.register(HookPhase.BEFORE, "fail", lambda obj: obj.with_error(original))
        chain.register(HookPhase.ERROR, "clear", self._clear_error)

        with pytest.raises(BadRequest) as exc_info:
            _run(HookRunner(chain).run(_make_obj(StubService(), id="1")))
        assert exc_info.value is original

    def test_recover_policy_returns_result(self, chain):
        service = StubService(error=ConnectionError("down"))
        after = []
        chain.register(HookPhase.AFTER, "after", lambda obj: after.append(1))
        chain.register(HookPhase.ERROR, "clear", self._clear_error)

        runner = HookRunner(chain, error_policy=ErrorPolicy.RECOVER)
        result = _run(runner.run(_make_obj(service, id="1")))

        assert result == {"fallback": True}
        assert after == []  # after hooks are not re-entered

    def test_recover_policy_still_fails_when_error_kept(self, chain):
        chain.register(HookPhase.BEFORE, "fail", lambda obj: obj.with_error(BadRequest("x")))
        runner = HookRunner(chain, error_policy="recover")
        with pytest.raises(BadRequest):
            _run(runner.run(_make_obj(StubService(), id="1")))


# =============================================================================
# Continuations
# =============================================================================


class TestContinuations:
    def test_double_next_ignored(self, chain, caplog):
        caplog.set_level(logging.WARNING, logger="feathers-hooks.hooks")
        service = StubService(response={})

        def twice(obj, next):
            next(obj.copy(parameters={"call": 1}))
            next(obj.copy(parameters={"call": 2}))

        chain.register(HookPhase.BEFORE, "twice", twice)
        _run(HookRunner(chain).run(_make_obj(service, method=Method.FIND)))

        assert service.calls[0]["parameters"] == {"call": 1}
        assert "called next more than once" in caplog.text

    def test_next_from_timer(self, chain):
        service = StubService(response={})

        def later(obj, next):
            asyncio.get_running_loop().call_later(
                0.01, next, obj.copy(parameters={"late": True})
            )

        chain.register(HookPhase.BEFORE, "later", later)
        _run(HookRunner(chain).run(_make_obj(service, method=Method.FIND)))
        assert service.calls[0]["parameters"] == {"late": True}

    def test_next_from_other_thread(self, chain):
        service = StubService(response={"ok": True})

        def threaded(obj, next):
            threading.Timer(0.01, next, args=(obj.copy(id="from-thread"),)).start()

        chain.register(HookPhase.BEFORE, "threaded", threaded)
        result = _run(HookRunner(chain).run(_make_obj(service, id="1")))

        assert result == {"ok": True}
        assert service.calls[0]["id"] == "from-thread"

    def test_async_continuation_hook(self, chain):
        async def slow(obj, next):
            await asyncio.sleep(0)
            next(obj.copy(id="2"))

        chain.register(HookPhase.BEFORE, "slow", slow)
        service = StubService()
        _run(HookRunner(chain).run(_make_obj(service, id="1")))
        assert service.calls[0]["id"] == "2"

    def test_timeout(self, chain):
        seen = []
        chain.register(HookPhase.BEFORE, "stall", lambda obj, next: None)
        chain.register(HookPhase.ERROR, "err", lambda obj: seen.append(obj.error))
        service = StubService()

        with pytest.raises(HookTimeoutError) as exc_info:
            _run(HookRunner(chain, timeout=0.05).run(_make_obj(service, id="1")))

        assert exc_info.value.hook_name == "stall"
        assert seen == [exc_info.value]
        assert service.calls == []

    def test_timeout_covers_async_hooks(self, chain):
        async def hang(obj, next):
            await asyncio.sleep(10)
            next(obj)

        chain.register(HookPhase.AFTER, "hang", hang)
        with pytest.raises(HookTimeoutError):
            _run(HookRunner(chain, timeout=0.05).run(_make_obj(StubService(), id="1")))

    def test_next_rejects_non_hook_object(self, chain):
        chain.register(HookPhase.BEFORE, "bad", lambda obj, next: next({"id": "1"}))
        with pytest.raises(TypeError, match="expected HookObject"):
            _run(HookRunner(chain).run(_make_obj(StubService(), id="1")))

    def test_next_rejects_changed_identity(self, chain):
        def swap_method(obj, next):
            next(HookObject(
                phase=obj.phase, app=obj.app, service=obj.service, method=Method.REMOVE
            ))

        chain.register(HookPhase.BEFORE, "swap", swap_method)
        service = StubService()
        with pytest.raises(ValueError, match="changed the phase"):
            _run(HookRunner(chain).run(_make_obj(service, id="1")))
        assert service.calls == []

    def test_invalid_next_from_timer_fails_chain(self, chain, caplog):
        caplog.set_level(logging.ERROR, logger="feathers-hooks.hooks")
        seen = []

        def later(obj, next):
            asyncio.get_running_loop().call_later(0.01, next, {"id": "1"})

        chain.register(HookPhase.BEFORE, "later", later)
        chain.register(HookPhase.ERROR, "err", lambda obj: seen.append(obj.error))
        service = StubService()

        with pytest.raises(TypeError, match="expected HookObject"):
            _run(HookRunner(chain).run(_make_obj(service, id="1")))
        assert isinstance(seen[0], TypeError)
        assert service.calls == []
        assert "invalid record to next" in caplog.text

    def test_invalid_next_from_other_thread_fails_chain(self, chain):
        def threaded(obj, next):
            swapped = HookObject(
                phase=obj.phase, app=obj.app, service=obj.service, method=Method.REMOVE
            )
            threading.Timer(0.01, next, args=(swapped,)).start()

        chain.register(HookPhase.BEFORE, "threaded", threaded)
        service = StubService()
        with pytest.raises(ValueError, match="changed the phase"):
            _run(HookRunner(chain).run(_make_obj(service, id="1")))
        assert service.calls == []

    def test_invalid_next_from_task_fails_chain(self, chain):
        tasks = []

        def spawn(obj, next):
            async def resume():
                next("not a record")

            tasks.append(asyncio.get_running_loop().create_task(resume()))

        chain.register(HookPhase.AFTER, "spawn", spawn)
        with pytest.raises(TypeError, match="expected HookObject"):
            _run(HookRunner(chain).run(_make_obj(StubService(), id="1")))


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrency:
    def test_concurrent_calls_are_isolated(self, chain):
        class EchoService:
            name = "echo"

            async def invoke(self, method, parameters=None, data=None, id=None):
                await asyncio.sleep(0.01 if id == "1" else 0)
                return {"id": id, "seen": parameters["seen"]}

        async def tag(obj):
            params = dict(obj.parameters or {})
            params["seen"] = obj.id
            await asyncio.sleep(0.02 if obj.id == "1" else 0)
            return obj.copy(parameters=params)

        def stamp(obj):
            return obj.with_result({**obj.result, "stamped": obj.id})

        chain.register(HookPhase.BEFORE, "tag", tag)
        chain.register(HookPhase.AFTER, "stamp", stamp)
        runner = HookRunner(chain)
        service = EchoService()

        async def both():
            return await asyncio.gather(
                runner.run(_make_obj(service, id="1", parameters={})),
                runner.run(_make_obj(service, id="2", parameters={})),
            )

        first, second = _run(both())
        assert first == {"id": "1", "seen": "1", "stamped": "1"}
        assert second == {"id": "2", "seen": "2", "stamped": "2"}

    def test_uncopyable_values_pass_through(self, chain):
        lock = threading.Lock()
        seen = []
        chain.register(HookPhase.BEFORE, "tag", lambda obj: obj.copy(id="1"))
        chain.register(HookPhase.AFTER, "seen", lambda obj: seen.append(obj.data["lock"]))
        service = StubService(response={"ok": True})

        obj = _make_obj(service, method=Method.PATCH, data={"lock": lock})
        assert _run(HookRunner(chain).run(obj)) == {"ok": True}
        assert service.calls[0]["data"]["lock"] is lock
        assert seen == [lock]

    def test_uncopyable_values_reach_error_hooks(self, chain):
        lock = threading.Lock()
        seen = []
        chain.register(HookPhase.ERROR, "seen", lambda obj: seen.append(obj.data["lock"]))
        service = StubService(error=LookupError("gone"))

        obj = _make_obj(service, method=Method.PATCH, id="1", data={"lock": lock})
        with pytest.raises(LookupError):
            _run(HookRunner(chain).run(obj))
        assert seen == [lock]
