"""
AUTOBP - Module Core (Logique Métier)
-------------------------------------
Suivi de phase, moteur d'automatisation (accept, préselection, ban, pick),
connecteur LCU d'une session et thread WebSocket de l'application.
Ce module est agnostique de l'interface.
"""

import asyncio
import concurrent.futures
import logging
from threading import Thread, Event, Lock
from typing import Optional, Dict, Any, Callable, List

from .config import (
    AutomationPolicy, EP_GAMEFLOW, EP_READY_CHECK, EP_SESSION,
    RECONNECT_POLL_INTERVAL, PHASE_DISPLAY_MAP
)
from .errors import LCUError, CredentialsNotFoundError, NotConnectedError, LCURequestError
from .events import EventSubscriber, Route
from .executor import ActionExecutor
from .policy import (
    PRESELECT_PHASES, BAN_PHASES, PICK_PHASES, ACTION_TYPE_BAN, ACTION_TYPE_PICK,
    resolve_local_cell_id, get_assigned_position, get_pick_intent,
    find_current_action, find_preselect_action, resolve_target_champion, ChampionChoice
)
from .session import ChampSelectSession
from .state import (
    ActionLedger, ActionKey, ActionKind, GamePhase, LCUStatus, QUEUE_PHASES
)
from .transport import LCUTransport, Credentials, find_credentials


# ───────────────────────────────────────────────────────────────────────────
# AUTOMATION ENGINE
# ───────────────────────────────────────────────────────────────────────────

class AutomationEngine:
    """
    Machine à états des phases et politique d'automatisation.

    Reçoit les données des événements déjà décodées. Les handlers s'exécutent
    dans la boucle de lecture ; seuls l'acceptation et les ban/pick définitifs
    partent en tâches indépendantes.
    """

    def __init__(
        self,
        transport,
        ledger: ActionLedger,
        executor: ActionExecutor,
        get_params: Callable[[], Dict[str, Any]],
        describe: Optional[Callable[[Optional[int]], str]] = None
    ):
        self.transport = transport
        self.ledger = ledger
        self.executor = executor
        self.get_params = get_params
        self._describe = describe or (lambda cid: str(cid))

        self._state_lock = Lock()
        self._phase: GamePhase = GamePhase.UNKNOWN
        self._raw_phase: str = "unknown"
        self._session: Optional[ChampSelectSession] = None

    def routes(self) -> List[Route]:
        """Routes du canal d'événements, par ordre de priorité."""
        return [
            (EP_READY_CHECK, self.handle_ready_check),
            (EP_GAMEFLOW, self.handle_gameflow_phase),
            (EP_SESSION, self.handle_champ_select),
        ]

    def policy(self) -> AutomationPolicy:
        return AutomationPolicy.from_params(self.get_params())

    # --- État lu depuis l'extérieur ---

    @property
    def phase(self) -> GamePhase:
        with self._state_lock:
            return self._phase

    @property
    def raw_phase(self) -> str:
        with self._state_lock:
            return self._raw_phase

    @property
    def session(self) -> Optional[ChampSelectSession]:
        with self._state_lock:
            return self._session

    def _set_session(self, session: Optional[ChampSelectSession]) -> None:
        with self._state_lock:
            self._session = session

    def reset(self) -> None:
        """Remise à zéro à la déconnexion."""
        with self._state_lock:
            self._phase = GamePhase.UNKNOWN
            self._raw_phase = "unknown"
            self._session = None
        self.ledger.advance(GamePhase.UNKNOWN)

    # ───────────────────────────────────────────────────────────────────────
    # HANDLERS
    # ───────────────────────────────────────────────────────────────────────

    async def handle_ready_check(self, data: Any) -> None:
        """Partie trouvée : accepte une seule fois par entrée en ReadyCheck."""
        if not isinstance(data, dict):
            return
        if data.get("state") != "InProgress" or data.get("playerResponse") in ("Accepted", "Declined"):
            return
        if not self.policy().auto_accept_enabled:
            return

        version = self.ledger.claim_ready_check()
        if version is None:
            return
        self.executor.spawn_accept(version)

    async def handle_gameflow_phase(self, data: Any) -> None:
        """Changement de phase : nouvelle epoch et remise à zéro de l'état dépendant."""
        if not isinstance(data, str) or not data:
            return

        phase = GamePhase.from_raw(data)
        with self._state_lock:
            previous = self._raw_phase
            self._phase = phase
            self._raw_phase = data
        if data == previous:
            return

        logging.info(f"[Auto] Phase changée : {previous} -> {data} ({PHASE_DISPLAY_MAP.get(data, data)})")
        self.ledger.advance(phase)

        if phase is GamePhase.CHAMP_SELECT:
            # L'événement de session peut arriver en retard : on amorce l'état
            await self._seed_champ_select()
        else:
            self._set_session(None)
            if phase in QUEUE_PHASES:
                logging.debug("[Auto] Acceptation et préselection réarmées.")

    async def _seed_champ_select(self) -> None:
        try:
            data = await self.transport.request("GET", EP_SESSION)
        except LCUError as e:
            logging.warning(f"[Auto] Session de sélection indisponible: {e}")
            return
        if isinstance(data, dict) and self.phase is GamePhase.CHAMP_SELECT:
            self._set_session(ChampSelectSession.from_json(data))

    async def handle_champ_select(self, data: Any) -> None:
        """Nouvel instantané de session : préselection, puis ban, puis pick."""
        if not isinstance(data, dict):
            return

        session = ChampSelectSession.from_json(data)
        if session.malformed_fields:
            logging.debug(f"[Auto] Champs de session inattendus: {', '.join(session.malformed_fields)}")
        self._set_session(session)

        local_cell = resolve_local_cell_id(session)
        if local_cell is None:
            return

        policy = self.policy()
        timer_phase = session.timer_phase

        if policy.preselect_enabled and timer_phase in PRESELECT_PHASES:
            await self.preselect(session, policy, local_cell)

        if policy.auto_ban_enabled and policy.auto_ban_champion_id is not None and timer_phase in BAN_PHASES:
            self.auto_ban(session, policy, local_cell)

        if policy.auto_pick_enabled and timer_phase in PICK_PHASES:
            self.auto_pick(session, policy, local_cell)

    # ───────────────────────────────────────────────────────────────────────
    # POLITIQUE
    # ───────────────────────────────────────────────────────────────────────

    def _warn_once(self, choice: ChampionChoice, operation: str) -> None:
        if choice.warning is not None and self.ledger.mark_warned(choice.warning):
            logging.warning(f"[Auto] {choice.describe_missing()}, {operation} ignoré.")

    async def preselect(self, session: ChampSelectSession, policy: AutomationPolicy, local_cell: int) -> bool:
        """Déclare l'intention de pick (sans verrouiller). Retourne True si un PATCH a réussi."""
        position = get_assigned_position(session, local_cell)
        choice = resolve_target_champion(policy, position, ActionKind.PICK_PRESELECT)
        if choice.champion_id is None:
            self._warn_once(choice, "préselection")
            return False
        target = choice.champion_id

        if get_pick_intent(session, local_cell) == target and self.ledger.last_preselect_champion == target:
            return False

        action = find_preselect_action(session, local_cell)
        if action is None:
            return False

        key = ActionKey(action.id, ActionKind.PICK_PRESELECT)
        if self.ledger.is_processed(key):
            return False

        version = self.ledger.version
        where = f" pour {position}" if position else " (par défaut)"
        logging.info(f"[Auto] Préselection de {self._describe(target)}{where}")

        if not await self.executor.patch_action(action.id, target, completed=False):
            return False
        self.ledger.remember_preselect(target, key, version)
        return True

    def auto_ban(self, session: ChampSelectSession, policy: AutomationPolicy, local_cell: int) -> Optional[asyncio.Task]:
        action = find_current_action(session, local_cell, ACTION_TYPE_BAN)
        if action is None:
            return None

        key = ActionKey(action.id, ActionKind.BAN)
        # Marqué avant l'envoi : un instantané rejoué ne relance pas le ban
        if not self.ledger.try_mark_processed(key):
            return None

        champion_id = policy.auto_ban_champion_id
        logging.info(f"[Auto] Ban automatique de {self._describe(champion_id)} (action {action.id})")
        return self.executor.spawn_completion(key, champion_id)

    def auto_pick(self, session: ChampSelectSession, policy: AutomationPolicy, local_cell: int) -> Optional[asyncio.Task]:
        action = find_current_action(session, local_cell, ACTION_TYPE_PICK)
        if action is None:
            return None

        key = ActionKey(action.id, ActionKind.PICK_COMPLETED)
        if self.ledger.is_processed(key):
            return None

        position = get_assigned_position(session, local_cell)
        choice = resolve_target_champion(policy, position, ActionKind.PICK_COMPLETED)
        if choice.champion_id is None:
            self._warn_once(choice, "pick automatique")
            return None

        if not self.ledger.try_mark_processed(key):
            return None

        where = f" pour {position}" if position else " (par défaut)"
        logging.info(f"[Auto] Pick automatique de {self._describe(choice.champion_id)}{where} (action {action.id})")
        return self.executor.spawn_completion(key, choice.champion_id)


# ───────────────────────────────────────────────────────────────────────────
# LCU CONNECTOR (une connexion)
# ───────────────────────────────────────────────────────────────────────────

class LCUConnector:
    """
    Contexte d'une connexion au client : transport, ledger, exécuteur et moteur.
    Recréé à chaque reconnexion, rien n'est partagé au niveau du module.
    """

    def __init__(
        self,
        get_params: Callable[[], Dict[str, Any]],
        credentials_provider: Callable[[], Credentials] = find_credentials,
        describe: Optional[Callable[[Optional[int]], str]] = None,
        transport=None,
        settle_delay: Optional[float] = None
    ):
        self.transport = transport or LCUTransport(credentials_provider)
        self.ledger = ActionLedger()
        executor_kwargs = {} if settle_delay is None else {"settle_delay": settle_delay}
        self.executor = ActionExecutor(self.transport, self.ledger, describe=describe, **executor_kwargs)
        self.engine = AutomationEngine(self.transport, self.ledger, self.executor, get_params, describe)
        self.subscriber = EventSubscriber(self.transport, self.engine.routes())

    @property
    def is_connected(self) -> bool:
        return self.transport.is_connected

    async def connect(self) -> Credentials:
        """
        Connexion HTTPS, ouverture du canal, abonnement puis lecture de la phase courante.

        Raises:
            CredentialsNotFoundError, ConnectFailedError, HandshakeFailedError
        """
        creds = await self.transport.connect()
        try:
            await self.transport.open_event_channel()
            await self.subscriber.subscribe()
        except LCUError:
            await self.transport.disconnect()
            raise
        await self.update_status()
        logging.info("[LCU] API prête.")
        return creds

    async def update_status(self) -> None:
        """Lit la phase courante pour amorcer la machine à états."""
        try:
            phase = await self.transport.request("GET", EP_GAMEFLOW)
        except LCUError as e:
            logging.error(f"[LCU] Lecture de la phase impossible: {e}")
            return
        await self.engine.handle_gameflow_phase(phase)

    async def run(self) -> None:
        """Boucle de lecture jusqu'à la fermeture du canal."""
        try:
            await self.subscriber.run()
        finally:
            await self.disconnect()

    async def request(self, method: str, path: str, body: Any = None) -> Any:
        if not self.transport.is_connected:
            raise NotConnectedError()
        return await self.transport.request(method, path, body)

    async def disconnect(self) -> None:
        self.executor.cancel_all()
        await self.transport.disconnect()
        self.engine.reset()

    def get_status(self) -> LCUStatus:
        connected = self.transport.is_connected
        if not connected:
            return LCUStatus(connected=False, client_status="unknown", champ_select=None)

        champ_select = None
        session = self.engine.session
        if session is not None and self.engine.phase is GamePhase.CHAMP_SELECT:
            champ_select = dict(session.raw)
        return LCUStatus(connected=True, client_status=self.engine.raw_phase, champ_select=champ_select)


# ───────────────────────────────────────────────────────────────────────────
# WEBSOCKET MANAGER
# ───────────────────────────────────────────────────────────────────────────

class WebSocketManager:
    """
    Thread dédié qui possède la boucle asyncio et la connexion au client.
    Thread-safe: communique avec l'application via callbacks uniquement.
    """

    EVENT_CONNECTED = "connected"
    EVENT_DISCONNECTED = "disconnected"
    EVENT_STATUS = "status"

    def __init__(
        self,
        ui_callback: Callable[[str, Any], None],
        get_params: Callable[[], Dict[str, Any]],
        describe: Optional[Callable[[Optional[int]], str]] = None,
        credentials_provider: Callable[[], Credentials] = find_credentials,
        poll_interval: float = RECONNECT_POLL_INTERVAL
    ):
        """
        Args:
            ui_callback: Fonction appelée pour notifier l'application
            get_params: Fonction retournant les paramètres actuels
            describe: Fonction ID -> nom de champion pour les logs
            credentials_provider: Découverte des identifiants du client
            poll_interval: Délai entre deux recherches du client
        """
        self.ui_callback = ui_callback
        self.get_params = get_params
        self.describe = describe
        self.credentials_provider = credentials_provider
        self.poll_interval = poll_interval

        self.connector: Optional[LCUConnector] = None
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.ws_active: bool = False
        self._thread: Optional[Thread] = None
        self._stop_event = Event()
        self._wake: Optional[asyncio.Event] = None
        self._lock = Lock()

    def _notify_ui(self, event_type: str, data: Any = None) -> None:
        try:
            self.ui_callback(event_type, data)
        except Exception as e:
            logging.warning(f"[WS] Callback en erreur ({event_type}): {e}")

    def start(self) -> None:
        """Démarre le thread WebSocket."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = Thread(target=self._ws_loop, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Arrête le WebSocket proprement."""
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        loop = self.loop
        if loop is not None and loop.is_running():
            asyncio.run_coroutine_threadsafe(self._drop_connection(), loop)
        if self._thread is not None:
            self._thread.join(timeout)

    def reconnect(self) -> None:
        """Ferme la connexion courante ; la boucle en ouvre une nouvelle aussitôt."""
        loop = self.loop
        if loop is None or not loop.is_running():
            self.start()
            return
        asyncio.run_coroutine_threadsafe(self._drop_connection(), loop)

    @property
    def is_active(self) -> bool:
        """Retourne True si le WebSocket est connecté."""
        return self.ws_active

    def get_status(self) -> LCUStatus:
        with self._lock:
            connector = self.connector
        if connector is None:
            return LCUStatus(connected=False, client_status="Disconnected")
        return connector.get_status()

    def request(self, method: str, path: str, body: Any = None, timeout: float = 15.0) -> Any:
        """
        Requête bloquante depuis un autre thread.

        Raises:
            NotConnectedError: aucune connexion active
            LCURequestError: pas de réponse dans le délai (la requête est annulée)
        """
        with self._lock:
            connector = self.connector
        loop = self.loop
        if connector is None or loop is None or not connector.is_connected:
            raise NotConnectedError()
        future = asyncio.run_coroutine_threadsafe(connector.request(method, path, body), loop)
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError as e:
            future.cancel()
            raise LCURequestError(f"Timeout sur {method} {path} après {timeout}s") from e

    # ───────────────────────────────────────────────────────────────────────
    # BOUCLE
    # ───────────────────────────────────────────────────────────────────────

    def _ws_loop(self) -> None:
        """Boucle principale du WebSocket (exécutée dans un thread séparé)."""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self.loop = loop
        try:
            loop.run_until_complete(self._run())
        except Exception as e:
            logging.critical(f"[WS] Erreur critique dans la boucle WebSocket : {e}", exc_info=True)
        finally:
            self.ws_active = False
            self.loop = None
            loop.close()

    async def _run(self) -> None:
        self._wake = asyncio.Event()
        client_missing_logged = False

        while not self._stop_event.is_set():
            connector = LCUConnector(self.get_params, self.credentials_provider, self.describe)
            with self._lock:
                self.connector = connector

            try:
                await connector.connect()
            except CredentialsNotFoundError:
                if not client_missing_logged:
                    logging.info("[WS] Client LoL introuvable, en attente...")
                    self._notify_ui(self.EVENT_STATUS, "LoL fermé. En attente...")
                    client_missing_logged = True
                await self._sleep(self.poll_interval)
                continue
            except LCUError as e:
                logging.warning(f"[WS] Connexion impossible: {e}")
                await self._sleep(self.poll_interval)
                continue

            client_missing_logged = False
            self.ws_active = True
            self._notify_ui(self.EVENT_CONNECTED, connector.transport.credentials)
            self._notify_ui(self.EVENT_STATUS, "Client LoL détecté ! Prêt à vous aider.")

            await connector.run()

            self.ws_active = False
            self._notify_ui(self.EVENT_DISCONNECTED, None)
            logging.info("[WS] Déconnecté.")

        with self._lock:
            self.connector = None

    async def _sleep(self, seconds: float) -> None:
        wake = self._wake
        try:
            await asyncio.wait_for(wake.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        wake.clear()

    async def _drop_connection(self) -> None:
        if self._wake is not None:
            self._wake.set()
        with self._lock:
            connector = self.connector
        if connector is not None:
            await connector.disconnect()
