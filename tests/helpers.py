"""Outils partagés par les tests : faux transport et fabriques de sessions."""

import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple

from autobp.config import default_parameters
from autobp.transport import Credentials


class FakeTransport:
    """Transport en mémoire : enregistre les requêtes et rejoue des réponses prédéfinies."""

    def __init__(self, responses: Optional[Dict[Tuple[str, str], Any]] = None, frames: Optional[list] = None,
                 frame_delay: float = 0.0):
        self.responses = responses or {}
        self.calls: List[Tuple[str, str, Any]] = []
        self.sent: list = []
        self.frames_to_send = list(frames or [])
        self.frame_delay = frame_delay
        self.is_connected = True
        self.connect_calls = 0
        self.channel_opened = False
        self.disconnect_calls = 0
        self.credentials = Credentials("127.0.0.1", 2999, "secret")

    async def connect(self) -> Credentials:
        self.connect_calls += 1
        self.is_connected = True
        return self.credentials

    async def open_event_channel(self) -> None:
        self.channel_opened = True

    async def request(self, method: str, path: str, body: Any = None) -> Any:
        self.calls.append((method, path, body))
        response = self.responses.get((method, path))
        if isinstance(response, Exception):
            raise response
        return response

    async def send_json(self, frame: Any) -> None:
        self.sent.append(frame)

    async def frames(self):
        # frame_delay laisse tourner les tâches lancées par les handlers
        for frame in self.frames_to_send:
            if isinstance(frame, Exception):
                raise frame
            yield frame
            await asyncio.sleep(self.frame_delay)

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.is_connected = False

    def calls_for(self, method: str) -> List[Tuple[str, str, Any]]:
        return [c for c in self.calls if c[0] == method]


def event_frame(uri, data=None, event_type="Update"):
    return json.dumps([8, "OnJsonApiEvent", {"uri": uri, "data": data, "eventType": event_type}])


def make_params(**overrides) -> Dict[str, Any]:
    params = default_parameters()
    params.update(overrides)
    return params


def make_action(action_id: int, actor: int = 3, kind: str = "pick",
                completed: bool = False, in_progress: bool = True, champion_id: int = 0) -> Dict[str, Any]:
    return {
        "id": action_id,
        "actorCellId": actor,
        "type": kind,
        "completed": completed,
        "isInProgress": in_progress,
        "championId": champion_id,
    }


def make_session(actions=(), local_cell: int = 3, position: Optional[str] = "JUNGLE",
                 pick_intent: int = 0, timer_phase: str = "BAN_PICK") -> Dict[str, Any]:
    return {
        "localPlayerCellId": local_cell,
        "myTeam": [
            {"cellId": 1, "assignedPosition": "TOP", "championPickIntent": 0},
            {"cellId": 3, "assignedPosition": position or "", "championPickIntent": pick_intent},
        ],
        "actions": [list(actions)],
        "timer": {"phase": timer_phase},
    }
