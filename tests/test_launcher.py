"""Tests de l'application, du thread WebSocket et du lockfile d'instance."""

import asyncio
import os
import queue
import threading
from unittest.mock import MagicMock

import pytest
from aiohttp import test_utils, web

import launcher
from autobp import utils
from autobp.config import default_parameters
from autobp.core import WebSocketManager
from autobp.errors import CredentialsNotFoundError, HTTPStatusError, LCURequestError, NotConnectedError
from autobp.transport import Credentials, basic_auth_header
from autobp.utils import check_single_instance, remove_lockfile

TOKEN = "launcher-token"


@pytest.fixture
def app(monkeypatch):
    monkeypatch.setattr(launcher, "load_parameters", lambda: default_parameters())
    monkeypatch.setattr(launcher, "remove_lockfile", lambda: None)
    catalog = MagicMock()
    catalog.resolve_champion.side_effect = {"Ahri": 103, "Lee Sin": 64}.get
    return launcher.AutoBPApplication(catalog=catalog, ws_manager=MagicMock())


@pytest.fixture
def lcu_server():
    """Faux client LCU servi dans son propre thread ; le WebSocket reste ouvert."""
    loop = asyncio.new_event_loop()
    started = threading.Event()
    state = {}

    @web.middleware
    async def require_auth(request, handler):
        if request.headers.get("Authorization") != basic_auth_header(TOKEN):
            return web.json_response({"message": "unauthorized"}, status=401)
        return await handler(request)

    async def gameflow(request):
        return web.json_response("Lobby")

    async def events(request):
        ws = web.WebSocketResponse(protocols=("wamp",))
        await ws.prepare(request)
        await ws.receive_json()
        async for _ in ws:
            pass
        return ws

    app = web.Application(middlewares=[require_auth])
    app.router.add_get("/", events)
    app.router.add_get("/lol-gameflow/v1/gameflow-phase", gameflow)

    def serve():
        asyncio.set_event_loop(loop)
        server = test_utils.TestServer(app)
        loop.run_until_complete(server.start_server())
        state["port"] = server.port
        started.set()
        loop.run_forever()
        loop.run_until_complete(server.close())
        loop.close()

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    assert started.wait(5.0)
    yield state
    loop.call_soon_threadsafe(loop.stop)
    thread.join(5.0)


class TestAutoBPApplication:
    def test_start_ranked_queue_creates_solo_duo_lobby(self, app):
        app.start_ranked_queue()
        app.ws_manager.request.assert_called_once_with("POST", "/lol-lobby/v2/lobby", {"queueId": 420})

    def test_start_ranked_queue_propagates_client_errors(self, app):
        app.ws_manager.request.side_effect = HTTPStatusError(500, method="POST", path="/lol-lobby/v2/lobby")
        with pytest.raises(HTTPStatusError):
            app.start_ranked_queue()

    def test_go_to_main_menu_leaves_lobby(self, app):
        app.go_to_main_menu()
        app.ws_manager.request.assert_called_once_with("DELETE", "/lol-lobby/v2/lobby")

    def test_summoner_is_none_when_disconnected(self, app):
        app.ws_manager.request.side_effect = NotConnectedError()
        assert app.get_current_summoner() is None
        assert app.get_ranked_stats() is None

    def test_summoner_returned_when_connected(self, app):
        app.ws_manager.request.return_value = {"gameName": "Faker", "summonerLevel": 500}
        assert app.get_current_summoner() == {"gameName": "Faker", "summonerLevel": 500}

    def test_save_config_resolves_champion_names(self, app, monkeypatch):
        saved = []
        monkeypatch.setattr(launcher, "save_parameters", lambda params: saved.append(params) or True)

        assert app.save_config({
            "auto_pick_enabled": True,
            "auto_pick_champion_id": "Ahri",
            "position_champions": {"jungle": "Lee Sin"},
        }) is True

        config = app.get_config()
        assert config["auto_pick_enabled"] is True
        assert config["auto_pick_champion_id"] == 103
        assert config["position_champions"]["JUNGLE"] == 64
        assert saved == [config]

    def test_get_champions_comes_from_catalog(self, app):
        app.catalog.get_champions.return_value = [{"id": 103, "name": "Ahri"}, {"id": 64, "name": "Lee Sin"}]
        assert app.get_champions() == [{"id": 103, "name": "Ahri"}, {"id": 64, "name": "Lee Sin"}]

    def test_get_config_returns_a_copy(self, app):
        app.get_config()["auto_accept_enabled"] = True
        assert app.get_config()["auto_accept_enabled"] is False

    def test_quit_app_runs_once(self, app):
        app.quit_app()
        app.quit_app()
        app.ws_manager.stop.assert_called_once_with()

    def test_core_event_callback_prints_status(self, app, capsys):
        app.on_core_event(WebSocketManager.EVENT_STATUS, "LoL fermé. En attente...")
        app.on_core_event(WebSocketManager.EVENT_DISCONNECTED)
        out = capsys.readouterr().out
        assert "LoL fermé" in out
        assert "déconnecté" in out


class TestWebSocketManager:
    def test_request_without_connection(self):
        manager = WebSocketManager(lambda *_: None, default_parameters)
        with pytest.raises(NotConnectedError):
            manager.request("GET", "/lol-gameflow/v1/gameflow-phase")
        assert manager.get_status().connected is False
        assert manager.get_status().client_status == "Disconnected"

    def test_waits_for_client_then_stops(self):
        events = []
        waiting = threading.Event()

        def on_event(event_type, data=None):
            events.append((event_type, data))
            waiting.set()

        def no_client():
            raise CredentialsNotFoundError("absent")

        manager = WebSocketManager(on_event, default_parameters, credentials_provider=no_client, poll_interval=0.01)
        manager.start()
        try:
            assert waiting.wait(5.0)
        finally:
            manager.stop(timeout=5.0)

        assert not manager._thread.is_alive()
        assert not manager.is_active
        # le message d'attente n'est émis qu'une fois
        assert events == [(WebSocketManager.EVENT_STATUS, "LoL fermé. En attente...")]

    def test_request_timeout_cancels_pending_call(self):
        loop = asyncio.new_event_loop()
        thread = threading.Thread(target=loop.run_forever, daemon=True)
        thread.start()
        cancelled = threading.Event()

        class SlowConnector:
            is_connected = True

            async def request(self, method, path, body=None):
                try:
                    await asyncio.sleep(10)
                except asyncio.CancelledError:
                    cancelled.set()
                    raise

        manager = WebSocketManager(lambda *_: None, default_parameters)
        manager.loop = loop
        manager.connector = SlowConnector()
        try:
            with pytest.raises(LCURequestError):
                manager.request("GET", "/lol-summoner/v1/current-summoner", timeout=0.05)
            assert cancelled.wait(5.0)
        finally:
            loop.call_soon_threadsafe(loop.stop)
            thread.join(5.0)
            loop.close()

    def test_reconnect_opens_a_new_connection(self, lcu_server):
        events = []
        connections = queue.Queue()

        def on_event(event_type, data=None):
            if event_type == WebSocketManager.EVENT_STATUS:
                return
            events.append(event_type)
            if event_type == WebSocketManager.EVENT_CONNECTED:
                connections.put(data)

        def local_client():
            return Credentials("127.0.0.1", lcu_server["port"], TOKEN, scheme="http")

        manager = WebSocketManager(on_event, default_parameters, credentials_provider=local_client, poll_interval=0.05)
        manager.start()
        try:
            first = connections.get(timeout=5.0)
            assert manager.get_status().client_status == "Lobby"
            manager.reconnect()
            second = connections.get(timeout=5.0)
        finally:
            manager.stop(timeout=5.0)

        assert first.port == second.port == lcu_server["port"]
        assert events[:3] == [
            WebSocketManager.EVENT_CONNECTED,
            WebSocketManager.EVENT_DISCONNECTED,
            WebSocketManager.EVENT_CONNECTED,
        ]
        assert not manager.is_active


class TestSingleInstance:
    def test_first_instance_writes_pid(self, tmp_path):
        lock = str(tmp_path / "autobp.lock")
        assert check_single_instance(lock) is True
        with open(lock) as f:
            assert int(f.read()) == os.getpid()

    def test_other_live_instance_blocks(self, tmp_path, monkeypatch):
        lock = tmp_path / "autobp.lock"
        lock.write_text(str(os.getpid() + 1))
        monkeypatch.setattr(utils.psutil, "pid_exists", lambda pid: True)
        assert check_single_instance(str(lock)) is False

    def test_stale_lockfile_is_replaced(self, tmp_path):
        lock = tmp_path / "autobp.lock"
        lock.write_text("not a pid")
        assert check_single_instance(str(lock)) is True
        assert lock.read_text() == str(os.getpid())

    def test_remove_lockfile(self, tmp_path):
        lock = tmp_path / "autobp.lock"
        lock.write_text("1")
        remove_lockfile(str(lock))
        assert not lock.exists()
        remove_lockfile(str(lock))
