"""
AUTOBP - État partagé
---------------------
Phases de jeu, état de connexion et registre des actions déjà traitées (ledger).
Le ledger est remplacé d'un bloc à chaque changement de phase (epoch).
"""

from enum import Enum
from dataclasses import dataclass, field
from threading import Lock
from typing import Optional, Dict, Any, Set


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class GamePhase(Enum):
    """Phase du client. OTHER couvre InProgress, EndOfGame, None, etc."""

    UNKNOWN = "Unknown"
    LOBBY = "Lobby"
    MATCHMAKING = "Matchmaking"
    READY_CHECK = "ReadyCheck"
    CHAMP_SELECT = "ChampSelect"
    OTHER = "Other"

    @classmethod
    def from_raw(cls, raw: str) -> "GamePhase":
        for phase in (cls.LOBBY, cls.MATCHMAKING, cls.READY_CHECK, cls.CHAMP_SELECT):
            if raw == phase.value:
                return phase
        return cls.OTHER


# Phases d'avant-partie : l'entrée dans l'une d'elles réarme l'acceptation
QUEUE_PHASES = frozenset({GamePhase.LOBBY, GamePhase.MATCHMAKING, GamePhase.READY_CHECK})


class ActionKind(Enum):
    BAN = "ban"
    PICK_COMPLETED = "pick_completed"
    PICK_PRESELECT = "pick_preselect"

    @property
    def completes(self) -> bool:
        return self is not ActionKind.PICK_PRESELECT


@dataclass(frozen=True)
class ActionKey:
    """Clé de dédoublonnage d'une action de sélection, ex: "7_pick_completed"."""

    action_id: int
    kind: ActionKind

    def __str__(self) -> str:
        return f"{self.action_id}_{self.kind.value}"


class WarningReason(Enum):
    NO_CHAMPION_FOR_POSITION = "no_champion_for_position"
    NO_DEFAULT_CHAMPION = "no_default"


@dataclass(frozen=True)
class WarningKey:
    reason: WarningReason
    kind: ActionKind
    position: Optional[str] = None

    def __str__(self) -> str:
        if self.reason is WarningReason.NO_CHAMPION_FOR_POSITION:
            suffix = "_auto_pick" if self.kind is ActionKind.PICK_COMPLETED else ""
            return f"no_champion_for_position_{self.position}{suffix}"
        if self.kind is ActionKind.PICK_COMPLETED:
            return "no_default_auto_pick_champion"
        return "no_default_preselect_champion"


@dataclass
class ActionEpoch:
    """Portée de dédoublonnage liée à une occupation continue d'une phase."""

    version: int
    phase: GamePhase
    processed: Set[ActionKey] = field(default_factory=set)
    warned: Set[WarningKey] = field(default_factory=set)
    ready_check_accepted: bool = False
    last_preselect_champion: Optional[int] = None


class ActionLedger:
    """
    Registre thread-safe des actions traitées et des avertissements déjà émis.

    Toutes les lectures/écritures passent par un seul verrou : la boucle
    d'événements, les tâches asynchrones et les lecteurs de statut peuvent
    y accéder en parallèle.
    """

    def __init__(self):
        self._lock = Lock()
        self._epoch = ActionEpoch(version=0, phase=GamePhase.UNKNOWN)

    # --- Epoch ---

    @property
    def version(self) -> int:
        with self._lock:
            return self._epoch.version

    @property
    def phase(self) -> GamePhase:
        with self._lock:
            return self._epoch.phase

    def advance(self, phase: GamePhase) -> int:
        """Remplace l'epoch courante par une epoch vide. Retourne la nouvelle version."""
        with self._lock:
            self._epoch = ActionEpoch(version=self._epoch.version + 1, phase=phase)
            return self._epoch.version

    def clear(self) -> None:
        """Vide les actions et avertissements sans changer de phase."""
        with self._lock:
            self._epoch.processed = set()
            self._epoch.warned = set()

    # --- Actions ---

    def is_processed(self, key: ActionKey) -> bool:
        with self._lock:
            return key in self._epoch.processed

    def mark_processed(self, key: ActionKey) -> bool:
        """Marque une action. Même garde que try_mark_processed (une seule complétion par ID)."""
        return self.try_mark_processed(key)

    def try_mark_processed(self, key: ActionKey) -> bool:
        """
        Marque une action de façon atomique.

        Returns:
            False si la clé existait déjà, ou si une autre complétion
            (ban/pick) est déjà enregistrée pour le même ID d'action.
        """
        with self._lock:
            processed = self._epoch.processed
            if key in processed:
                return False
            if key.kind.completes:
                for other in ActionKind:
                    if other is not key.kind and other.completes and ActionKey(key.action_id, other) in processed:
                        return False
            processed.add(key)
            return True

    # --- Avertissements ---

    def is_warned(self, key: WarningKey) -> bool:
        with self._lock:
            return key in self._epoch.warned

    def mark_warned(self, key: WarningKey) -> bool:
        """Retourne True si l'avertissement n'avait pas encore été émis dans cette epoch."""
        with self._lock:
            if key in self._epoch.warned:
                return False
            self._epoch.warned.add(key)
            return True

    # --- Ready check / préselection ---

    def claim_ready_check(self) -> Optional[int]:
        """Réserve l'acceptation de la partie pour cette epoch. None si déjà faite."""
        with self._lock:
            if self._epoch.ready_check_accepted:
                return None
            self._epoch.ready_check_accepted = True
            return self._epoch.version

    @property
    def ready_check_accepted(self) -> bool:
        with self._lock:
            return self._epoch.ready_check_accepted

    @property
    def last_preselect_champion(self) -> Optional[int]:
        with self._lock:
            return self._epoch.last_preselect_champion

    def remember_preselect(self, champion_id: int, key: ActionKey, version: int) -> bool:
        """Enregistre une préselection réussie, sauf si l'epoch a changé entre-temps."""
        with self._lock:
            if self._epoch.version != version:
                return False
            self._epoch.last_preselect_champion = champion_id
            self._epoch.processed.add(key)
            return True

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "version": self._epoch.version,
                "phase": self._epoch.phase.value,
                "processed": sorted(str(k) for k in self._epoch.processed),
                "warned": sorted(str(k) for k in self._epoch.warned),
                "ready_check_accepted": self._epoch.ready_check_accepted,
                "last_preselect_champion": self._epoch.last_preselect_champion,
            }


@dataclass
class LCUStatus:
    """Copie de l'état exposée aux lecteurs hors du cœur (UI, CLI)."""

    connected: bool = False
    client_status: str = "unknown"
    champ_select: Optional[Dict[str, Any]] = None
