"""Tests for handshake and teardown."""
import asyncio
from unittest.mock import AsyncMock

import pytest

from studysync.auth import CredentialVerifier, set_verifier
from studysync.chat.lifecycle import LifecycleManager
from studysync.chat.manager import RoomRegistry
from studysync.chat.session import SessionRegistry

from conftest import TEST_SECRET, live_rooms, make_token


class FakeWebSocket:
    def __init__(self, fail_send: bool = False):
        self.accept = AsyncMock()
        self.close = AsyncMock()
        self.sent = []
        self.fail_send = fail_send

    async def send_json(self, frame: dict) -> None:
        if self.fail_send:
            raise RuntimeError("client went away")
        self.sent.append(frame)


@pytest.fixture(autouse=True)
def verifier(test_config):
    set_verifier(CredentialVerifier(secret_key=TEST_SECRET))
    yield
    set_verifier(None)


@pytest.fixture
def manager():
    return LifecycleManager(SessionRegistry(), RoomRegistry())


class TestHandshake:

    @pytest.mark.asyncio
    async def test_accepts_valid_credential(self, manager):
        ws = FakeWebSocket()
        session = await manager.handshake(ws, make_token(1, "Alice"))

        try:
            assert session is not None
            assert session.identity.user_id == 1
            ws.accept.assert_awaited_once()
            ws.close.assert_not_called()
            assert ws.sent == [{"type": "connected", "userId": 1, "userName": "Alice"}]
            assert session in manager.sessions
        finally:
            await manager.teardown(session)

    @pytest.mark.asyncio
    async def test_later_frames_go_through_writer(self, manager):
        ws = FakeWebSocket()
        session = await manager.handshake(ws, make_token(1, "Alice"))

        session.send_frame({"type": "joined", "groupId": 7})
        await session._outbox.join()
        assert ws.sent[-1] == {"type": "joined", "groupId": 7}

        await manager.teardown(session)
        assert session._writer is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("credential", [None, "", "garbage"])
    async def test_refused_before_accept(self, manager, credential):
        ws = FakeWebSocket()
        assert await manager.handshake(ws, credential) is None

        ws.close.assert_awaited_once_with(code=1008)
        ws.accept.assert_not_called()
        assert ws.sent == []
        assert len(manager.sessions) == 0

    @pytest.mark.asyncio
    async def test_client_gone_during_handshake(self, manager):
        ws = FakeWebSocket(fail_send=True)
        assert await manager.handshake(ws, make_token(1, "Alice")) is None
        assert len(manager.sessions) == 0


class TestTeardown:

    @pytest.mark.asyncio
    async def test_removes_session_everywhere(self, manager):
        alice = await manager.handshake(FakeWebSocket(), make_token(1, "Alice"))
        bob = await manager.handshake(FakeWebSocket(), make_token(2, "Bob"))
        for room_id in (7, 8):
            await manager.rooms.join(room_id, alice)
            alice.joined_rooms.add(room_id)
        await manager.rooms.join(7, bob)
        bob.joined_rooms.add(7)

        await manager.teardown(alice)

        assert alice.terminated
        assert alice.joined_rooms == set()
        assert alice not in manager.sessions
        assert manager.rooms._rooms[7] == {bob}
        assert live_rooms(manager.rooms) == [7]
        assert set(manager.rooms._locks) == {7}

        await manager.teardown(bob)

    @pytest.mark.asyncio
    async def test_idempotent(self, manager):
        alice = await manager.handshake(FakeWebSocket(), make_token(1, "Alice"))
        await manager.rooms.join(7, alice)
        alice.joined_rooms.add(7)

        await manager.teardown(alice)
        await manager.teardown(alice)

        assert live_rooms(manager.rooms) == []
        assert len(manager.sessions) == 0

    @pytest.mark.asyncio
    async def test_stuck_writer_does_not_block_teardown(self, manager):
        ws = FakeWebSocket()
        never = asyncio.Event()
        alice = await manager.handshake(ws, make_token(1, "Alice"))

        async def stuck(frame):
            await never.wait()

        alice._send = stuck
        alice.send_frame({"type": "message"})

        await asyncio.wait_for(manager.teardown(alice), timeout=1)
        assert alice not in manager.sessions
