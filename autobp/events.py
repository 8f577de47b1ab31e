"""
AUTOBP - Abonné aux événements
------------------------------
S'abonne au canal OnJsonApiEvent, décode les trames WAMP
[opcode, nom, payload] et les route selon l'URI de la ressource.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional, Any, Callable, Awaitable, Sequence, Tuple, Union

import aiohttp

from .config import WS_EVENT_TOPIC, WAMP_OPCODE_EVENT, WAMP_OPCODE_SUBSCRIBE
from .errors import MalformedEventError, LCUError

Handler = Callable[[Any], Awaitable[None]]
Route = Tuple[str, Handler]


@dataclass(frozen=True)
class JsonApiEvent:
    uri: str
    data: Any = None
    event_type: Optional[str] = None


def parse_frame(raw: Union[str, bytes, list]) -> Optional[JsonApiEvent]:
    """
    Décode une trame du canal d'événements.

    Returns:
        L'événement, ou None si la trame est valide mais ne nous concerne pas
        (autre opcode, autre sujet).

    Raises:
        MalformedEventError: trame illisible ou champ attendu manquant
    """
    if isinstance(raw, (str, bytes)):
        if not raw:
            raise MalformedEventError("trame vide")
        try:
            frame = json.loads(raw)
        except ValueError as e:
            raise MalformedEventError(f"JSON invalide: {e}") from e
    else:
        frame = raw

    if not isinstance(frame, list) or len(frame) < 3:
        raise MalformedEventError("trame hors format [opcode, nom, payload]")

    opcode, name, payload = frame[0], frame[1], frame[2]
    if isinstance(opcode, bool) or opcode != WAMP_OPCODE_EVENT or name != WS_EVENT_TOPIC:
        return None

    if not isinstance(payload, dict):
        raise MalformedEventError("payload n'est pas un objet")
    uri = payload.get("uri")
    if not isinstance(uri, str):
        raise MalformedEventError("champ 'uri' absent ou non textuel")

    event_type = payload.get("eventType")
    return JsonApiEvent(
        uri=uri,
        data=payload.get("data"),
        event_type=event_type if isinstance(event_type, str) else None
    )


def decode_frame(raw: Union[str, bytes, list]) -> Optional[JsonApiEvent]:
    """Comme parse_frame, mais les trames illisibles sont ignorées silencieusement."""
    try:
        return parse_frame(raw)
    except MalformedEventError as e:
        logging.debug(f"[WS] Trame ignorée: {e}")
        return None


class EventSubscriber:
    """
    Boucle de lecture du canal d'événements.

    Les routes sont testées dans l'ordre, par inclusion de sous-chaîne dans
    l'URI : la première qui correspond gagne.
    """

    def __init__(self, transport, routes: Sequence[Route]):
        self._transport = transport
        self._routes = list(routes)
        self.frames_received: int = 0
        self.events_dispatched: int = 0

    async def subscribe(self) -> None:
        await self._transport.send_json([WAMP_OPCODE_SUBSCRIBE, WS_EVENT_TOPIC])

    async def dispatch(self, event: JsonApiEvent) -> bool:
        """Route un événement. Retourne True si un handler l'a pris en charge."""
        for pattern, handler in self._routes:
            if pattern in event.uri:
                self.events_dispatched += 1
                try:
                    await handler(event.data)
                except LCUError as e:
                    logging.warning(f"[WS] Handler {pattern} en échec: {e}")
                except Exception as e:
                    logging.error(f"[WS] Erreur inattendue dans le handler {pattern}: {e}", exc_info=True)
                return True
        return False

    async def run(self) -> None:
        """
        Lit les trames jusqu'à fermeture ou erreur du flux.

        La fin de la boucle ferme toujours le transport (état DISCONNECTED).
        """
        try:
            async for raw in self._transport.frames():
                self.frames_received += 1
                event = decode_frame(raw)
                if event is not None:
                    await self.dispatch(event)
        except (LCUError, aiohttp.ClientError, ConnectionError) as e:
            logging.warning(f"[WS] Boucle de lecture interrompue: {e}")
        finally:
            await self._transport.disconnect()
