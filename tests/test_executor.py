"""Tests de l'exécuteur d'actions."""

import asyncio

from autobp.errors import HTTPStatusError
from autobp.executor import ActionExecutor
from autobp.state import ActionKey, ActionKind, ActionLedger, GamePhase

from helpers import FakeTransport

ACTION_7 = "/lol-champ-select/v1/session/actions/7"


class TestPatchAction:
    def test_sends_champion_and_completed_flag(self):
        transport = FakeTransport()
        executor = ActionExecutor(transport, ActionLedger(), settle_delay=0)

        assert asyncio.run(executor.patch_action(7, 64, completed=False)) is True
        assert transport.calls == [("PATCH", ACTION_7, {"championId": 64, "completed": False})]

    def test_client_error_returns_false(self):
        transport = FakeTransport({("PATCH", ACTION_7): HTTPStatusError(400, method="PATCH", path=ACTION_7)})
        executor = ActionExecutor(transport, ActionLedger(), settle_delay=0)

        assert asyncio.run(executor.patch_action(7, 64, completed=True)) is False


class TestCompletion:
    def test_completion_patches_after_delay(self):
        transport = FakeTransport()
        executor = ActionExecutor(transport, ActionLedger(), settle_delay=0.01)

        async def scenario():
            task = executor.spawn_completion(ActionKey(7, ActionKind.PICK_COMPLETED), 64)
            assert executor.pending == 1
            return await task

        assert asyncio.run(scenario()) is True
        assert transport.calls == [("PATCH", ACTION_7, {"championId": 64, "completed": True})]

    def test_completion_abandoned_after_epoch_change(self):
        transport = FakeTransport()
        ledger = ActionLedger()
        executor = ActionExecutor(transport, ledger, settle_delay=0.02)

        async def scenario():
            task = executor.spawn_completion(ActionKey(2, ActionKind.BAN), 157)
            ledger.advance(GamePhase.OTHER)
            return await task

        assert asyncio.run(scenario()) is False
        assert transport.calls == []

    def test_cancel_all(self):
        transport = FakeTransport()
        executor = ActionExecutor(transport, ActionLedger(), settle_delay=10)

        async def scenario():
            task = executor.spawn_completion(ActionKey(2, ActionKind.BAN), 157)
            await asyncio.sleep(0)
            executor.cancel_all()
            await asyncio.gather(task, return_exceptions=True)
            return task

        task = asyncio.run(scenario())
        assert task.cancelled()
        assert transport.calls == []


class TestAcceptReadyCheck:
    def test_accepts_during_ready_check(self):
        transport = FakeTransport()
        ledger = ActionLedger()
        executor = ActionExecutor(transport, ledger)
        version = ledger.advance(GamePhase.READY_CHECK)

        async def scenario():
            return await executor.spawn_accept(version)

        assert asyncio.run(scenario()) is True
        assert transport.calls == [("POST", "/lol-matchmaking/v1/ready-check/accept", None)]

    def test_skipped_outside_ready_check(self):
        transport = FakeTransport()
        ledger = ActionLedger()
        executor = ActionExecutor(transport, ledger)
        version = ledger.advance(GamePhase.MATCHMAKING)

        async def scenario():
            return await executor.spawn_accept(version)

        assert asyncio.run(scenario()) is False
        assert transport.calls == []

    def test_skipped_when_epoch_moved(self):
        transport = FakeTransport()
        ledger = ActionLedger()
        executor = ActionExecutor(transport, ledger)
        version = ledger.advance(GamePhase.READY_CHECK)
        ledger.advance(GamePhase.READY_CHECK)

        async def scenario():
            return await executor.spawn_accept(version)

        assert asyncio.run(scenario()) is False
        assert transport.calls == []
