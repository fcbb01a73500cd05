import asyncio

import pytest

from songsmith.models.generation import CompositionTask, TaskStatus
from songsmith.services.errors import (
    BusyError,
    CompositionTimeoutError,
    NetworkError,
    ParseError,
    ServiceError,
)
from songsmith.services.orchestrator import CompositionOrchestrator, OrchestratorState

from conftest import ScriptedComposition


class BlockingComposition(ScriptedComposition):
    """Holds the first status query open until released; later queries compose."""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def get_task(self, task_id):
        self.polls += 1
        if self.polls > 1:
            return CompositionTask(
                task_id=task_id, status=TaskStatus.COMPOSED, result_url=self.url
            )
        self.entered.set()
        await self.release.wait()
        return CompositionTask(task_id=task_id, status=TaskStatus.COMPOSING)


class FailingCreate(ScriptedComposition):
    async def create_track(self, prompt):
        self.calls.append(("create_track", prompt))
        raise ServiceError.from_response("Failed to create track", 401, "bad token")


class TestPolling:
    @pytest.mark.asyncio
    async def test_composed_on_third_query(self, sleep_recorder):
        """pending, pending, composed → exactly three queries and the result URL."""
        service = ScriptedComposition(["pending", "pending", "composed"])
        orch = CompositionOrchestrator(service, sleep=sleep_recorder)

        url = await orch.start("dreamy lo-fi piano")

        assert url == "https://cdn.example.com/song.mp3"
        assert service.polls == 3
        assert orch.attempts == 3
        assert sleep_recorder.calls == [10.0, 10.0]
        assert orch.state is OrchestratorState.COMPOSED
        assert orch.result_url == url
        assert orch.task.status is TaskStatus.COMPOSED

    @pytest.mark.asyncio
    async def test_times_out_after_thirty_queries(self, sleep_recorder):
        """Thirty non-terminal answers → TimeoutError and no 31st query."""
        service = ScriptedComposition(["pending"] * 40)
        orch = CompositionOrchestrator(service, sleep=sleep_recorder)

        with pytest.raises(CompositionTimeoutError) as exc_info:
            await orch.start("dreamy lo-fi piano")

        assert isinstance(exc_info.value, TimeoutError)
        assert service.polls == 30
        assert len(sleep_recorder.calls) == 29
        assert orch.state is OrchestratorState.TIMED_OUT
        assert orch.result_url is None

    @pytest.mark.asyncio
    async def test_failed_status_stops_polling_immediately(self, sleep_recorder):
        """'failed' on attempt 5 ends the run with the service's message."""
        service = ScriptedComposition(["composing"] * 4 + ["failed"] + ["composed"] * 25)
        orch = CompositionOrchestrator(service, sleep=sleep_recorder)

        with pytest.raises(ServiceError, match="Model overloaded"):
            await orch.start("dreamy lo-fi piano")

        assert service.polls == 5
        assert orch.state is OrchestratorState.FAILED
        assert orch.error == "Model overloaded"
        assert orch.task.error_message == "Model overloaded"

    @pytest.mark.asyncio
    async def test_unknown_status_keeps_polling(self, sleep_recorder):
        service = ScriptedComposition(["queued", "running", "composed"])
        orch = CompositionOrchestrator(service, sleep=sleep_recorder)

        assert await orch.start("jazz trio") == service.url
        assert service.polls == 3

    @pytest.mark.asyncio
    async def test_custom_bounds(self, sleep_recorder):
        service = ScriptedComposition(["pending"] * 10)
        orch = CompositionOrchestrator(
            service, poll_interval=0.5, max_attempts=3, sleep=sleep_recorder
        )

        with pytest.raises(CompositionTimeoutError):
            await orch.start("jazz trio")
        assert service.polls == 3
        assert sleep_recorder.calls == [0.5, 0.5]

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            CompositionOrchestrator(ScriptedComposition(), max_attempts=0)


class TestStages:
    @pytest.mark.asyncio
    async def test_stage_order_and_arguments(self, sleep_recorder):
        service = ScriptedComposition(["composed"])
        seen = []
        orch = CompositionOrchestrator(service, sleep=sleep_recorder, on_state=seen.append)

        await orch.start("epic orchestral")

        assert service.calls == [
            ("create_track", "epic orchestral"),
            ("start_compose", "trk-1", "mp3", False),
        ]
        assert seen == [
            OrchestratorState.PROMPT_READY,
            OrchestratorState.TRACK_CREATED,
            OrchestratorState.COMPOSING,
            OrchestratorState.COMPOSED,
        ]
        assert orch.track.track_id == "trk-1"

    @pytest.mark.asyncio
    async def test_create_failure_is_fatal(self, sleep_recorder):
        """A failed create call never reaches compose or polling."""
        service = FailingCreate()
        orch = CompositionOrchestrator(service, sleep=sleep_recorder)

        with pytest.raises(ServiceError) as exc_info:
            await orch.start("epic orchestral")

        assert exc_info.value.status == 401
        assert exc_info.value.body == "bad token"
        assert service.calls == [("create_track", "epic orchestral")]
        assert service.polls == 0
        assert orch.state is OrchestratorState.FAILED
        assert orch.track is None

    @pytest.mark.asyncio
    async def test_network_error_in_poll_fails_run(self, sleep_recorder):
        class FlakyPoll(ScriptedComposition):
            async def get_task(self, task_id):
                self.polls += 1
                raise NetworkError("connection reset")

        orch = CompositionOrchestrator(FlakyPoll(), sleep=sleep_recorder)
        with pytest.raises(NetworkError):
            await orch.start("epic orchestral")
        assert orch.state is OrchestratorState.FAILED

    @pytest.mark.asyncio
    async def test_empty_prompt_is_rejected_before_any_call(self):
        service = ScriptedComposition()
        orch = CompositionOrchestrator(service)

        with pytest.raises(ParseError):
            await orch.start("   ")
        assert service.calls == []
        assert orch.state is OrchestratorState.IDLE

    @pytest.mark.asyncio
    async def test_can_restart_after_failure(self, sleep_recorder):
        service = ScriptedComposition(["failed"])
        orch = CompositionOrchestrator(service, sleep=sleep_recorder)
        with pytest.raises(ServiceError):
            await orch.start("first try")

        service.statuses = ["composed"]
        service.polls = 0
        assert await orch.start("second try") == service.url
        assert orch.state is OrchestratorState.COMPOSED
        assert orch.error is None


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_start_while_composing_raises_busy(self):
        """A second start leaves the in-flight task and status untouched."""
        service = BlockingComposition()
        orch = CompositionOrchestrator(service)
        run = asyncio.create_task(orch.start("first"))
        await service.entered.wait()

        assert orch.state is OrchestratorState.COMPOSING
        task_before = orch.task

        with pytest.raises(BusyError):
            await orch.start("second")

        assert orch.state is OrchestratorState.COMPOSING
        assert orch.task is task_before
        assert orch.task.task_id == "task-1"
        assert [c for c in service.calls if c[0] == "create_track"] == [
            ("create_track", "first")
        ]

        assert orch.cancel() is True
        assert await run is None

    @pytest.mark.asyncio
    async def test_cancel_aborts_request_and_resets_to_idle(self):
        service = BlockingComposition()
        orch = CompositionOrchestrator(service)
        run = asyncio.create_task(orch.start("first"))
        await service.entered.wait()

        orch.cancel()
        assert await run is None
        assert orch.state is OrchestratorState.IDLE
        assert orch.task is None
        assert service.polls == 1

    @pytest.mark.asyncio
    async def test_cancel_during_wait_stops_polling(self):
        service = ScriptedComposition(["pending"] * 30)
        waiting = asyncio.Event()

        async def slow_sleep(seconds):
            waiting.set()
            await asyncio.sleep(3600)

        orch = CompositionOrchestrator(service, sleep=slow_sleep)
        run = asyncio.create_task(orch.start("first"))
        await waiting.wait()

        assert orch.cancel() is True
        assert await run is None
        assert service.polls == 1
        assert orch.state is OrchestratorState.IDLE

    @pytest.mark.asyncio
    async def test_cancel_without_run_is_noop(self):
        orch = CompositionOrchestrator(ScriptedComposition())
        assert orch.cancel() is False
        assert orch.state is OrchestratorState.IDLE

    @pytest.mark.asyncio
    async def test_caller_cancellation_propagates(self):
        service = BlockingComposition()
        orch = CompositionOrchestrator(service)
        run = asyncio.create_task(orch.start("first"))
        await service.entered.wait()

        run.cancel()
        with pytest.raises(asyncio.CancelledError):
            await run
        assert orch.state is OrchestratorState.IDLE

    @pytest.mark.asyncio
    async def test_new_run_after_cancel(self, sleep_recorder):
        service = BlockingComposition()
        orch = CompositionOrchestrator(service, sleep=sleep_recorder)
        run = asyncio.create_task(orch.start("first"))
        await service.entered.wait()
        orch.cancel()
        await run

        assert await orch.start("second") == "https://cdn.example.com/song.mp3"

    @pytest.mark.asyncio
    async def test_reset_refused_while_busy(self):
        service = BlockingComposition()
        orch = CompositionOrchestrator(service)
        run = asyncio.create_task(orch.start("first"))
        await service.entered.wait()

        with pytest.raises(BusyError):
            orch.reset()

        orch.cancel()
        await run
