"""
AUTOBP - Module de Configuration
--------------------------------
Contient toutes les constantes, endpoints, et la gestion des paramètres.
"""

import os
import json
import tempfile
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Mapping


# ───────────────────────────────────────────────────────────────────────────
# APPLICATION METADATA
# ───────────────────────────────────────────────────────────────────────────

APP_NAME: str = "AutoBP"
CURRENT_VERSION: str = "1.2"

# ───────────────────────────────────────────────────────────────────────────
# DATA DRAGON URLS
# ───────────────────────────────────────────────────────────────────────────

DDRAGON_LOCALE: str = "en_US"
URL_DD_VERSIONS: str = "https://ddragon.leagueoflegends.com/api/versions.json"
URL_DD_CHAMPIONS: str = "https://ddragon.leagueoflegends.com/cdn/{version}/data/{locale}/champion.json"

# ───────────────────────────────────────────────────────────────────────────
# LCU API ENDPOINTS
# ───────────────────────────────────────────────────────────────────────────

LCU_HOST: str = "127.0.0.1"
LCU_PRINCIPAL: str = "riot"

EP_GAMEFLOW: str = "/lol-gameflow/v1/gameflow-phase"
EP_READY_CHECK: str = "/lol-matchmaking/v1/ready-check"
EP_READY_CHECK_ACCEPT: str = "/lol-matchmaking/v1/ready-check/accept"
EP_SESSION: str = "/lol-champ-select/v1/session"
EP_SESSION_ACTION: str = "/lol-champ-select/v1/session/actions/{action_id}"
EP_LOBBY: str = "/lol-lobby/v2/lobby"
EP_CURRENT_SUMMONER: str = "/lol-summoner/v1/current-summoner"
EP_RANKED_STATS: str = "/lol-ranked/v1/current-ranked-stats"

# Canal d'événements (WAMP 1.0)
WS_SUBPROTOCOL: str = "wamp"
WS_EVENT_TOPIC: str = "OnJsonApiEvent"
WAMP_OPCODE_SUBSCRIBE: int = 5
WAMP_OPCODE_EVENT: int = 8

RANKED_SOLO_QUEUE_ID: int = 420

# ───────────────────────────────────────────────────────────────────────────
# TIMINGS
# ───────────────────────────────────────────────────────────────────────────

REQUEST_TIMEOUT: float = 10.0
HANDSHAKE_TIMEOUT: float = 10.0
DDRAGON_TIMEOUT: float = 15.0
SETTLE_DELAY: float = 0.5
RECONNECT_POLL_INTERVAL: float = 5.0

# ───────────────────────────────────────────────────────────────────────────
# GAME DATA MAPPINGS
# ───────────────────────────────────────────────────────────────────────────

POSITIONS: tuple = ("TOP", "JUNGLE", "MIDDLE", "BOTTOM", "UTILITY")

PHASE_DISPLAY_MAP: Dict[str, str] = {
    "Lobby": "Au Salon (Lobby)",
    "Matchmaking": "Recherche de partie...",
    "ReadyCheck": "Partie trouvée !",
    "ChampSelect": "Sélection des champions",
    "InProgress": "Partie en cours",
    "EndOfGame": "Fin de partie",
    "WaitingForStats": "En attente des stats",
    "PreEndOfGame": "Nexus détruit",
    "None": "Inactif"
}

# ───────────────────────────────────────────────────────────────────────────
# DEFAULT PARAMETERS
# ───────────────────────────────────────────────────────────────────────────

DEFAULT_PARAMS: Dict[str, Any] = {
    "auto_accept_enabled": False,
    "preselect_enabled": False,
    "auto_ban_enabled": False,
    "auto_pick_enabled": False,
    "preselect_champion_id": None,
    "auto_ban_champion_id": None,
    "auto_pick_champion_id": None,
    "position_champions": {pos: None for pos in POSITIONS},
}

CHAMPION_PARAM_KEYS: tuple = ("preselect_champion_id", "auto_ban_champion_id", "auto_pick_champion_id")

# ───────────────────────────────────────────────────────────────────────────
# PATH UTILITIES
# ───────────────────────────────────────────────────────────────────────────

def get_appdata_path(filename: str) -> str:
    """
    Retourne le chemin vers un fichier dans le dossier AppData de l'application.

    Args:
        filename: Nom du fichier

    Returns:
        Chemin complet vers le fichier dans AppData/AutoBP/
    """
    app_data_dir = os.getenv('APPDATA')
    if not app_data_dir:
        app_data_dir = os.path.expanduser("~")

    app_folder = os.path.join(app_data_dir, APP_NAME)
    if not os.path.exists(app_folder):
        try:
            os.makedirs(app_folder)
        except OSError:
            return filename

    return os.path.join(app_folder, filename)


# ───────────────────────────────────────────────────────────────────────────
# FILE PATHS
# ───────────────────────────────────────────────────────────────────────────

PARAMETERS_PATH: str = get_appdata_path("parameters.json")
CHAMPIONS_CACHE_FILE: str = get_appdata_path("champions.json")
LOCKFILE_PATH: str = os.path.join(tempfile.gettempdir(), 'autobp.lock')

# ───────────────────────────────────────────────────────────────────────────
# AUTOMATION POLICY
# ───────────────────────────────────────────────────────────────────────────

def _optional_int(value: Any) -> Optional[int]:
    """Convertit un ID de champion du JSON (int, str numérique, null) en int optionnel."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float) and value.is_integer():
        return int(value) if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip()) or None
    return None


def _normalize_positions(raw: Any) -> Dict[str, Optional[int]]:
    positions: Dict[str, Optional[int]] = {pos: None for pos in POSITIONS}
    if isinstance(raw, Mapping):
        for pos, cid in raw.items():
            if isinstance(pos, str) and pos.strip():
                positions[pos.strip().upper()] = _optional_int(cid)
    return positions


@dataclass(frozen=True)
class AutomationPolicy:
    """Instantané en lecture seule des réglages d'automatisation."""

    auto_accept_enabled: bool = False
    preselect_enabled: bool = False
    auto_ban_enabled: bool = False
    auto_pick_enabled: bool = False
    preselect_champion_id: Optional[int] = None
    auto_ban_champion_id: Optional[int] = None
    auto_pick_champion_id: Optional[int] = None
    position_champions: Mapping[str, Optional[int]] = field(default_factory=dict)

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "AutomationPolicy":
        return cls(
            auto_accept_enabled=bool(params.get("auto_accept_enabled", False)),
            preselect_enabled=bool(params.get("preselect_enabled", False)),
            auto_ban_enabled=bool(params.get("auto_ban_enabled", False)),
            auto_pick_enabled=bool(params.get("auto_pick_enabled", False)),
            preselect_champion_id=_optional_int(params.get("preselect_champion_id")),
            auto_ban_champion_id=_optional_int(params.get("auto_ban_champion_id")),
            auto_pick_champion_id=_optional_int(params.get("auto_pick_champion_id")),
            position_champions=_normalize_positions(params.get("position_champions")),
        )

    def champion_id_for_position(self, position: Optional[str]) -> Optional[int]:
        """Retourne le champion configuré pour un rôle (insensible à la casse)."""
        if not position:
            return None
        return self.position_champions.get(position.strip().upper())


# ───────────────────────────────────────────────────────────────────────────
# PARAMETERS MANAGEMENT
# ───────────────────────────────────────────────────────────────────────────

def default_parameters() -> Dict[str, Any]:
    """Copie profonde des paramètres par défaut."""
    params = DEFAULT_PARAMS.copy()
    params["position_champions"] = dict(DEFAULT_PARAMS["position_champions"])
    return params


def load_parameters(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Charge les paramètres depuis le fichier JSON.

    Args:
        path: Chemin du fichier (PARAMETERS_PATH par défaut)

    Returns:
        Dictionnaire des paramètres (valeurs par défaut si fichier inexistant)
    """
    path = path or PARAMETERS_PATH
    if not os.path.exists(path):
        return default_parameters()

    try:
        with open(path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        logging.warning(f"Erreur chargement paramètres: {e}")
        return default_parameters()

    if not isinstance(config, dict):
        logging.warning("Erreur chargement paramètres: le fichier ne contient pas un objet JSON")
        return default_parameters()

    # Fusionner avec les valeurs par défaut pour les clés manquantes
    merged = default_parameters()
    merged.update(config)
    merged["position_champions"] = _normalize_positions(config.get("position_champions"))
    return merged


def save_parameters(params: Dict[str, Any], path: Optional[str] = None) -> bool:
    """
    Sauvegarde les paramètres dans le fichier JSON.

    Args:
        params: Dictionnaire des paramètres à sauvegarder
        path: Chemin du fichier (PARAMETERS_PATH par défaut)

    Returns:
        True si succès, False sinon
    """
    path = path or PARAMETERS_PATH
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(params, f, indent=4, ensure_ascii=False)
        return True
    except (IOError, OSError) as e:
        logging.error(f"Erreur sauvegarde paramètres: {e}")
        return False


def update_parameters(params: Dict[str, Any], changes: Mapping[str, Any], resolve_champion=None) -> Dict[str, Any]:
    """
    Applique des modifications aux paramètres et retourne une nouvelle copie.

    Les drapeaux et champions par défaut sont remplacés, les champions par rôle
    sont fusionnés rôle par rôle.

    Args:
        params: Paramètres actuels
        changes: Valeurs à appliquer
        resolve_champion: Fonction optionnelle nom -> ID (ex: ChampionCatalog.resolve_champion)

    Returns:
        Nouveau dictionnaire de paramètres
    """
    def to_id(value: Any) -> Optional[int]:
        if resolve_champion is not None and isinstance(value, str) and not value.strip().isdigit():
            return resolve_champion(value)
        return _optional_int(value)

    updated = dict(params)
    positions = _normalize_positions(params.get("position_champions"))

    for key, value in changes.items():
        if key == "position_champions":
            if isinstance(value, Mapping):
                for pos, cid in value.items():
                    if isinstance(pos, str) and pos.strip():
                        positions[pos.strip().upper()] = to_id(cid)
        elif key in CHAMPION_PARAM_KEYS:
            updated[key] = to_id(value)
        elif key in DEFAULT_PARAMS:
            updated[key] = bool(value)
        else:
            logging.warning(f"Paramètre inconnu ignoré: {key}")

    updated["position_champions"] = positions
    return updated


# ───────────────────────────────────────────────────────────────────────────
# LOGGING CONFIGURATION (STRICT: AppData ONLY)
# ───────────────────────────────────────────────────────────────────────────

def setup_logging() -> str:
    """
    Configure le logging vers AppData/AutoBP/app_debug.log.

    Returns:
        Chemin absolu du fichier de log
    """
    app_data_dir = os.getenv('APPDATA')
    if not app_data_dir:
        app_data_dir = os.path.expanduser("~")

    log_folder = os.path.join(app_data_dir, APP_NAME)

    if not os.path.exists(log_folder):
        try:
            os.makedirs(log_folder, exist_ok=True)
        except OSError:
            # En dernier recours seulement, utiliser temp
            log_folder = tempfile.gettempdir()

    log_path = os.path.join(log_folder, "app_debug.log")

    logging.basicConfig(
        filename=log_path,
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s',
        encoding='utf-8'
    )

    return log_path
