"""
AUTOBP - Exécution des actions
------------------------------
Envoie les PATCH de ban/pick et l'acceptation de partie. Les complétions
sont lancées en tâches asyncio indépendantes pour ne jamais bloquer la boucle
d'événements ; elles s'annulent d'elles-mêmes si la phase a changé pendant
le délai d'attente.
"""

import asyncio
import logging
from typing import Optional, Set, Coroutine, Any

from .config import EP_SESSION_ACTION, EP_READY_CHECK_ACCEPT, SETTLE_DELAY
from .errors import LCUError
from .state import ActionLedger, ActionKey, ActionKind, GamePhase


class ActionExecutor:
    """Effectue les requêtes décidées par la politique. Jamais de nouvelle tentative."""

    def __init__(self, transport, ledger: ActionLedger, settle_delay: float = SETTLE_DELAY, describe=None):
        self._transport = transport
        self._ledger = ledger
        self._settle_delay = settle_delay
        self._describe = describe or (lambda cid: str(cid))
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def patch_action(self, action_id: int, champion_id: int, completed: bool) -> bool:
        """
        PATCH /lol-champ-select/v1/session/actions/{id}.

        Returns:
            True si le client a accepté la requête
        """
        path = EP_SESSION_ACTION.format(action_id=action_id)
        try:
            await self._transport.request("PATCH", path, {"championId": champion_id, "completed": completed})
        except LCUError as e:
            logging.error(f"[Auto] PATCH action {action_id} (champion {champion_id}) en échec: {e}")
            return False
        return True

    # ───────────────────────────────────────────────────────────────────────
    # TÂCHES ASYNCHRONES
    # ───────────────────────────────────────────────────────────────────────

    def _spawn(self, coro: Coroutine[Any, Any, bool]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def spawn_completion(self, key: ActionKey, champion_id: int) -> asyncio.Task:
        """Planifie le ban/pick définitif après le délai de stabilisation."""
        version = self._ledger.version
        return self._spawn(self._complete_action(key, champion_id, version))

    async def _complete_action(self, key: ActionKey, champion_id: int, version: int) -> bool:
        await asyncio.sleep(self._settle_delay)

        if self._ledger.version != version:
            logging.info(f"[Auto] Action {key} abandonnée : la phase a changé pendant l'attente.")
            return False

        label = "Ban" if key.kind is ActionKind.BAN else "Pick"
        success = await self.patch_action(key.action_id, champion_id, completed=True)
        if success:
            logging.info(f"[Auto] {label} verrouillé : {self._describe(champion_id)} (action {key.action_id})")
        else:
            logging.error(f"[Auto] {label} de {self._describe(champion_id)} impossible (action {key.action_id})")
        return success

    def spawn_accept(self, version: int) -> asyncio.Task:
        """Planifie l'acceptation de la partie trouvée."""
        return self._spawn(self._accept_ready_check(version))

    async def _accept_ready_check(self, version: int) -> bool:
        # Le ready-check peut précéder l'événement de phase : on n'accepte qu'en ReadyCheck
        if self._ledger.version != version or self._ledger.phase is not GamePhase.READY_CHECK:
            return False
        try:
            await self._transport.request("POST", EP_READY_CHECK_ACCEPT)
        except LCUError as e:
            logging.error(f"[Auto] Acceptation de la partie impossible: {e}")
            return False
        logging.info("[Auto] Partie acceptée !")
        return True

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Attend la fin des tâches en cours."""
        if self._tasks:
            await asyncio.wait(list(self._tasks), timeout=timeout)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
