"""
AUTOBP - Session de sélection des champions
-------------------------------------------
Décodage tolérant de l'objet /lol-champ-select/v1/session en structure typée.
Un champ absent vaut None ; un champ présent mais du mauvais type vaut aussi
None et son nom est ajouté à `malformed_fields`.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Tuple

_ABSENT = object()


class _Reader:
    """Extraction de champs typés qui garde trace des types inattendus."""

    def __init__(self, prefix: str = ""):
        self.prefix = prefix
        self.malformed: List[str] = []

    def get(self, obj: Dict[str, Any], key: str, expected: type) -> Any:
        value = obj.get(key, _ABSENT)
        if value is _ABSENT or value is None:
            return None
        # bool est une sous-classe de int : un booléen n'est pas un ID
        if expected is int and isinstance(value, bool):
            self.malformed.append(self.prefix + key)
            return None
        if expected is int and isinstance(value, float) and value.is_integer():
            return int(value)
        if not isinstance(value, expected):
            self.malformed.append(self.prefix + key)
            return None
        return value


@dataclass(frozen=True)
class PlayerSlot:
    cell_id: Optional[int]
    assigned_position: Optional[str] = None
    pick_intent: Optional[int] = None

    @classmethod
    def from_json(cls, obj: Dict[str, Any], reader: _Reader) -> "PlayerSlot":
        return cls(
            cell_id=reader.get(obj, "cellId", int),
            assigned_position=reader.get(obj, "assignedPosition", str),
            pick_intent=reader.get(obj, "championPickIntent", int),
        )


@dataclass(frozen=True)
class SessionAction:
    id: Optional[int]
    actor_cell_id: Optional[int]
    type: str = ""
    completed: bool = False
    is_in_progress: bool = False
    champion_id: Optional[int] = None

    @classmethod
    def from_json(cls, obj: Dict[str, Any], reader: _Reader) -> "SessionAction":
        return cls(
            id=reader.get(obj, "id", int),
            actor_cell_id=reader.get(obj, "actorCellId", int),
            type=reader.get(obj, "type", str) or "",
            completed=bool(reader.get(obj, "completed", bool)),
            is_in_progress=bool(reader.get(obj, "isInProgress", bool)),
            champion_id=reader.get(obj, "championId", int),
        )


@dataclass(frozen=True)
class ChampSelectSession:
    local_cell_id: Optional[int]
    team: Tuple[PlayerSlot, ...] = ()
    action_groups: Tuple[Tuple[SessionAction, ...], ...] = ()
    timer_phase: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    malformed_fields: Tuple[str, ...] = ()

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ChampSelectSession":
        reader = _Reader()
        local_cell_id = reader.get(data, "localPlayerCellId", int)

        team: List[PlayerSlot] = []
        for index, player in enumerate(reader.get(data, "myTeam", list) or []):
            if isinstance(player, dict):
                reader.prefix = f"myTeam[{index}]."
                team.append(PlayerSlot.from_json(player, reader))
            else:
                reader.malformed.append(f"myTeam[{index}]")
        reader.prefix = ""

        groups: List[Tuple[SessionAction, ...]] = []
        for g_index, group in enumerate(reader.get(data, "actions", list) or []):
            if not isinstance(group, list):
                reader.malformed.append(f"actions[{g_index}]")
                continue
            actions = []
            for a_index, action in enumerate(group):
                if isinstance(action, dict):
                    reader.prefix = f"actions[{g_index}][{a_index}]."
                    actions.append(SessionAction.from_json(action, reader))
                else:
                    reader.malformed.append(f"actions[{g_index}][{a_index}]")
            groups.append(tuple(actions))
        reader.prefix = ""

        timer = reader.get(data, "timer", dict) or {}
        reader.prefix = "timer."
        timer_phase = reader.get(timer, "phase", str)

        return cls(
            local_cell_id=local_cell_id,
            team=tuple(team),
            action_groups=tuple(groups),
            timer_phase=timer_phase,
            raw=data,
            malformed_fields=tuple(reader.malformed),
        )

    def slot_for(self, cell_id: int) -> Optional[PlayerSlot]:
        return next((p for p in self.team if p.cell_id == cell_id), None)

    def iter_actions(self):
        for group in self.action_groups:
            yield from group
