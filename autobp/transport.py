"""
AUTOBP - Transport LCU
----------------------
Découverte des identifiants du client, requêtes HTTPS authentifiées et
WebSocket d'événements. Un transport sert une seule connexion : une
reconnexion crée un nouveau transport.
"""

import os
import base64
import json
import asyncio
import logging
from dataclasses import dataclass, field
from threading import Event, Lock
from typing import Optional, Any, Callable, AsyncIterator

import aiohttp
import psutil
from lcu_driver.utils import _return_ux_process, parse_cmdline_args

from .config import (
    LCU_HOST, LCU_PRINCIPAL, EP_GAMEFLOW,
    WS_SUBPROTOCOL, REQUEST_TIMEOUT, HANDSHAKE_TIMEOUT
)
from .errors import (
    CredentialsNotFoundError, ConnectFailedError, HandshakeFailedError,
    NotConnectedError, LCURequestError, HTTPStatusError, LCUError
)
from .state import ConnectionState


# ───────────────────────────────────────────────────────────────────────────
# CREDENTIALS
# ───────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Credentials:
    host: str
    port: int
    token: str = field(repr=False)
    scheme: str = "https"

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    @property
    def ws_url(self) -> str:
        ws_scheme = "wss" if self.scheme == "https" else "ws"
        return f"{ws_scheme}://{self.host}:{self.port}/"


def basic_auth_header(token: str) -> str:
    """En-tête Authorization du client : Basic base64("riot:<token>")."""
    raw = f"{LCU_PRINCIPAL}:{token}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


def parse_lockfile(content: str) -> Credentials:
    """
    Lit le contenu du lockfile du client.

    Format: "LeagueClient:<pid>:<port>:<password>:<protocol>"
    """
    parts = content.strip().split(":")
    if len(parts) < 5 or not parts[2].isdigit():
        raise ValueError(f"lockfile invalide: {content!r}")
    return Credentials(host=LCU_HOST, port=int(parts[2]), token=parts[3], scheme=parts[4] or "https")


def find_credentials() -> Credentials:
    """
    Cherche le processus LeagueClientUx et en extrait port et token.

    La recherche du processus est celle de lcu_driver (nom du processus ou
    cmdline[0] sous Wine, processus zombies ignorés).

    Returns:
        Identifiants de connexion

    Raises:
        CredentialsNotFoundError: si le client n'est pas lancé
    """
    for process in _return_ux_process():
        try:
            args = parse_cmdline_args(process.cmdline())
        except psutil.Error as e:
            logging.debug(f"[LCU] Arguments du processus illisibles: {e}")
            continue

        port = args.get("app-port", "").strip('"')
        token = args.get("remoting-auth-token", "").strip('"')
        if port.isdigit() and token:
            return Credentials(host=LCU_HOST, port=int(port), token=token)

        # Repli sur le lockfile du dossier d'installation
        install_dir = args.get("install-directory", "").strip('"')
        if install_dir:
            lockfile = os.path.join(install_dir, "lockfile")
            try:
                with open(lockfile, "r", encoding="utf-8") as f:
                    return parse_lockfile(f.read())
            except (OSError, ValueError) as e:
                logging.warning(f"[LCU] Lockfile illisible ({lockfile}): {e}")

    raise CredentialsNotFoundError("LeagueClientUx process not found - League client may not be running")


def _decode_body(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


# ───────────────────────────────────────────────────────────────────────────
# TRANSPORT
# ───────────────────────────────────────────────────────────────────────────

class LCUTransport:
    """
    Requêtes HTTPS et WebSocket vers le client local.

    Le certificat du client est auto-signé : la vérification TLS est désactivée.
    Aucune requête n'est rejouée, l'appelant décide.
    """

    def __init__(
        self,
        credentials_provider: Callable[[], Credentials] = find_credentials,
        timeout: float = REQUEST_TIMEOUT,
        handshake_timeout: float = HANDSHAKE_TIMEOUT
    ):
        self._credentials_provider = credentials_provider
        self._timeout = timeout
        self._handshake_timeout = handshake_timeout

        self.credentials: Optional[Credentials] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

        self._state = ConnectionState.DISCONNECTED
        self._state_lock = Lock()
        self._stop_event = Event()

    @property
    def state(self) -> ConnectionState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: ConnectionState) -> None:
        with self._state_lock:
            self._state = state

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    async def connect(self) -> Credentials:
        """
        Trouve les identifiants et vérifie l'accès HTTPS au client.

        Raises:
            CredentialsNotFoundError: client absent
            ConnectFailedError: client présent mais injoignable
        """
        if self._stop_event.is_set():
            raise ConnectFailedError("Transport déjà fermé")

        self._set_state(ConnectionState.CONNECTING)
        try:
            creds = self._credentials_provider()
        except CredentialsNotFoundError:
            self._set_state(ConnectionState.DISCONNECTED)
            raise

        self.credentials = creds
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(ssl=False),
            headers={"Authorization": basic_auth_header(creds.token)}
        )

        try:
            await self.request("GET", EP_GAMEFLOW)
        except LCUError as e:
            await self._close_resources()
            self._set_state(ConnectionState.DISCONNECTED)
            raise ConnectFailedError(f"Client LCU injoignable sur le port {creds.port}: {e}") from e

        logging.info(f"[LCU] Client trouvé sur le port {creds.port}.")
        return creds

    async def request(self, method: str, path: str, body: Any = None) -> Any:
        """
        Envoie une requête JSON au client.

        Returns:
            Corps décodé (JSON, texte brut, ou None si vide)

        Raises:
            NotConnectedError, HTTPStatusError, LCURequestError
        """
        session = self._session
        if session is None or self.credentials is None:
            raise NotConnectedError()

        method = method.upper()
        url = f"{self.credentials.base_url}{path}"
        try:
            async with session.request(
                method, url, json=body,
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            ) as resp:
                status = resp.status
                text = await resp.text()
        except asyncio.TimeoutError as e:
            raise LCURequestError(f"Timeout sur {method} {path}") from e
        except aiohttp.ClientError as e:
            raise LCURequestError(f"Erreur réseau sur {method} {path}: {e}") from e

        payload = _decode_body(text)
        if not 200 <= status < 300:
            raise HTTPStatusError(status, payload, method, path)
        return payload

    async def open_event_channel(self) -> None:
        """
        Ouvre le WebSocket d'événements (sous-protocole WAMP).

        Raises:
            NotConnectedError: connect() n'a pas réussi
            HandshakeFailedError: échec de l'upgrade WebSocket
        """
        if self._session is None or self.credentials is None:
            raise NotConnectedError()

        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(
                    self.credentials.ws_url,
                    protocols=(WS_SUBPROTOCOL,),
                    autoping=True
                ),
                timeout=self._handshake_timeout
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise HandshakeFailedError(f"WebSocket refusé: {e or type(e).__name__}") from e

        self._set_state(ConnectionState.CONNECTED)
        logging.info("[WS] Canal d'événements ouvert.")

    async def send_json(self, frame: Any) -> None:
        ws = self._ws
        if ws is None or ws.closed:
            raise NotConnectedError("WebSocket non ouvert")
        try:
            await ws.send_json(frame)
        except (aiohttp.ClientError, ConnectionError) as e:
            raise LCURequestError(f"Envoi WebSocket impossible: {e}") from e

    async def frames(self) -> AsyncIterator[str]:
        """
        Itère sur les trames texte reçues jusqu'à la fermeture du flux.

        Raises:
            LCURequestError: erreur de lecture du WebSocket
        """
        ws = self._ws
        if ws is None:
            raise NotConnectedError("WebSocket non ouvert")

        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                yield msg.data
            elif msg.type == aiohttp.WSMsgType.BINARY:
                yield msg.data.decode("utf-8", errors="replace")
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise LCURequestError(f"Erreur de lecture WebSocket: {ws.exception()}")

    async def disconnect(self) -> None:
        """Ferme le WebSocket et la session HTTP. Sans effet si déjà fermé."""
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        self._set_state(ConnectionState.DISCONNECTED)
        await self._close_resources()
        logging.info("[LCU] Déconnecté.")

    async def _close_resources(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            await ws.close()
        session, self._session = self._session, None
        if session is not None and not session.closed:
            await session.close()
