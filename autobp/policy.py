"""
AUTOBP - Politique d'automatisation
-----------------------------------
Décisions pures sur un instantané de session : rôle du joueur, action en
cours, champion ciblé. Aucune requête réseau ici.
"""

from dataclasses import dataclass
from typing import Optional

from .config import AutomationPolicy
from .session import ChampSelectSession, SessionAction
from .state import ActionKind, WarningKey, WarningReason

# Sous-phases du timer de sélection
PRESELECT_PHASES = frozenset({"PLANNING", "BAN_PICK", "FINALIZATION"})
BAN_PHASES = frozenset({"BAN_PICK"})
PICK_PHASES = frozenset({"BAN_PICK", "FINALIZATION"})

ACTION_TYPE_BAN = "ban"
ACTION_TYPE_PICK = "pick"


def resolve_local_cell_id(session: ChampSelectSession) -> Optional[int]:
    """
    Retourne la cellule du joueur local si elle figure dans son équipe.

    None pour un spectateur (cellule -1) ou un événement périmé dont l'équipe
    ne contient plus le joueur.
    """
    cell_id = session.local_cell_id
    if cell_id is None or cell_id < 0:
        return None
    if session.slot_for(cell_id) is None:
        return None
    return cell_id


def get_assigned_position(session: ChampSelectSession, cell_id: int) -> Optional[str]:
    """Rôle assigné en majuscules, ou None (file sans rôle / fill)."""
    slot = session.slot_for(cell_id)
    if slot is None or not slot.assigned_position:
        return None
    return slot.assigned_position.strip().upper() or None


def get_pick_intent(session: ChampSelectSession, cell_id: int) -> Optional[int]:
    slot = session.slot_for(cell_id)
    return slot.pick_intent if slot else None


def find_current_action(session: ChampSelectSession, cell_id: int, action_type: str) -> Optional[SessionAction]:
    """Action du joueur local, non terminée, du type demandé et en cours."""
    for action in session.iter_actions():
        if (action.actor_cell_id == cell_id and not action.completed
                and action.type == action_type and action.is_in_progress
                and action.id is not None):
            return action
    return None


def find_preselect_action(session: ChampSelectSession, cell_id: int) -> Optional[SessionAction]:
    """Première action de pick non terminée du joueur, même avant son tour."""
    for action in session.iter_actions():
        if (action.actor_cell_id == cell_id and not action.completed
                and action.type == ACTION_TYPE_PICK and action.id is not None):
            return action
    return None


@dataclass(frozen=True)
class ChampionChoice:
    champion_id: Optional[int]
    position: Optional[str] = None
    warning: Optional[WarningKey] = None

    def describe_missing(self) -> str:
        if self.position:
            return f"Aucun champion configuré pour le rôle {self.position}"
        return "Aucun rôle assigné et aucun champion par défaut configuré"


def resolve_target_champion(policy: AutomationPolicy, position: Optional[str], kind: ActionKind) -> ChampionChoice:
    """
    Résout le champion visé pour une préselection ou un pick.

    Rôle assigné : champion du rôle. Sans rôle : champion par défaut de
    l'opération. Si rien n'est configuré, `warning` porte la clé à émettre.
    """
    if position:
        cid = policy.champion_id_for_position(position)
        if cid is None:
            return ChampionChoice(None, position, WarningKey(WarningReason.NO_CHAMPION_FOR_POSITION, kind, position))
        return ChampionChoice(cid, position)

    default = policy.auto_pick_champion_id if kind is ActionKind.PICK_COMPLETED else policy.preselect_champion_id
    if default is None:
        return ChampionChoice(None, None, WarningKey(WarningReason.NO_DEFAULT_CHAMPION, kind))
    return ChampionChoice(default)
