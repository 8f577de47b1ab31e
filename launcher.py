"""
AUTOBP - Point d'Entrée
-----------------------
Initialise l'application, gère les threads et la fermeture propre.
Fonctionne sans interface : l'état est suivi dans le log et sur la console.
"""

import sys
import logging
from threading import Thread, Event, Lock
from typing import Dict, Any, Optional, Mapping, List

from autobp.config import (
    load_parameters, save_parameters, update_parameters, setup_logging,
    CURRENT_VERSION, EP_LOBBY, EP_CURRENT_SUMMONER, EP_RANKED_STATS, RANKED_SOLO_QUEUE_ID
)
from autobp.utils import check_single_instance, remove_lockfile
from autobp.champions import ChampionCatalog
from autobp.core import WebSocketManager
from autobp.errors import LCUError, NotConnectedError
from autobp.state import LCUStatus


class AutoBPApplication:
    """Classe principale gérant le cycle de vie de l'application."""

    def __init__(self, catalog: Optional[ChampionCatalog] = None, ws_manager: Optional[WebSocketManager] = None):
        """
        Initialise l'application AutoBP.

        Le catalogue des champions est chargé en arrière-plan pour ne pas
        retarder la connexion au client.
        """
        self._params_lock = Lock()
        self._params: Dict[str, Any] = load_parameters()
        self._quit_event = Event()
        self._closed = False

        self.catalog = catalog or ChampionCatalog()
        self.ws_manager = ws_manager or WebSocketManager(
            ui_callback=self.on_core_event,
            get_params=self._get_params,
            describe=self.catalog.describe
        )

    def _load_catalog_async(self) -> None:
        def load_task():
            try:
                logging.info("Chargement des champions en arrière-plan...")
                self.catalog.load()
                logging.info(f"Champions chargés: {len(self.catalog.name_by_id)} (version {self.catalog.version or '?'})")
            except Exception as e:
                logging.error(f"Erreur lors du chargement des champions: {e}")

        Thread(target=load_task, daemon=True).start()

    # ───────────────────────────────────────────────────────────────────────
    # PARAMÈTRES
    # ───────────────────────────────────────────────────────────────────────

    def _get_params(self) -> Dict[str, Any]:
        """Retourne les paramètres actuels."""
        with self._params_lock:
            return dict(self._params)

    def get_config(self) -> Dict[str, Any]:
        return self._get_params()

    def save_config(self, changes: Mapping[str, Any]) -> bool:
        """Applique et sauvegarde des modifications (noms de champions acceptés)."""
        with self._params_lock:
            self._params = update_parameters(self._params, changes, self.catalog.resolve_champion)
            params = dict(self._params)
        if save_parameters(params):
            logging.info("Paramètres sauvegardés avec succès.")
            return True
        logging.error("Échec de la sauvegarde des paramètres.")
        return False

    def get_champions(self) -> List[Dict[str, Any]]:
        """Champions connus, triés par nom."""
        return self.catalog.get_champions()

    # ───────────────────────────────────────────────────────────────────────
    # COMMANDES CLIENT
    # ───────────────────────────────────────────────────────────────────────

    def get_status(self) -> LCUStatus:
        return self.ws_manager.get_status()

    def reconnect(self) -> None:
        logging.info("Reconnexion au client demandée.")
        self.ws_manager.reconnect()

    def start_ranked_queue(self) -> Any:
        """Crée un salon classé solo/duo (queueId 420)."""
        try:
            result = self.ws_manager.request("POST", EP_LOBBY, {"queueId": RANKED_SOLO_QUEUE_ID})
        except LCUError as e:
            logging.error(f"Création du salon classé impossible: {e}")
            raise
        logging.info("Salon classé créé.")
        return result

    def go_to_main_menu(self) -> None:
        """Quitte le salon courant."""
        try:
            self.ws_manager.request("DELETE", EP_LOBBY)
        except LCUError as e:
            logging.error(f"Impossible de quitter le salon: {e}")
            raise

    def get_current_summoner(self) -> Optional[Dict[str, Any]]:
        try:
            summoner = self.ws_manager.request("GET", EP_CURRENT_SUMMONER)
        except NotConnectedError:
            return None
        except LCUError as e:
            logging.warning(f"Invocateur indisponible: {e}")
            return None
        return summoner if isinstance(summoner, dict) else None

    def get_ranked_stats(self) -> Optional[Dict[str, Any]]:
        try:
            stats = self.ws_manager.request("GET", EP_RANKED_STATS)
        except NotConnectedError:
            return None
        except LCUError as e:
            logging.warning(f"Statistiques classées indisponibles: {e}")
            return None
        return stats if isinstance(stats, dict) else None

    # ───────────────────────────────────────────────────────────────────────
    # CYCLE DE VIE
    # ───────────────────────────────────────────────────────────────────────

    def on_core_event(self, event_type: str, data: Any = None) -> None:
        """Reçoit les notifications du thread WebSocket."""
        # Appelé depuis le thread WebSocket : aucune requête bloquante ici
        if event_type == WebSocketManager.EVENT_CONNECTED:
            port = getattr(data, "port", "?")
            print(f"Connecté au client LoL (port {port}).")
        elif event_type == WebSocketManager.EVENT_DISCONNECTED:
            print("Client LoL déconnecté.")
        elif event_type == WebSocketManager.EVENT_STATUS and data:
            print(data)

    def run(self) -> None:
        """Lance l'application jusqu'à Ctrl+C ou quit_app()."""
        logging.info(f"AutoBP v{CURRENT_VERSION} démarré.")
        self._load_catalog_async()
        self.ws_manager.start()
        try:
            while not self._quit_event.wait(1.0):
                pass
        finally:
            self.quit_app()

    def quit_app(self) -> None:
        """Ferme l'application proprement (une seule fois)."""
        if self._closed:
            return
        self._closed = True
        logging.info("Fermeture de l'application...")
        self._quit_event.set()
        self.ws_manager.stop()
        self.cleanup()

    def cleanup(self) -> None:
        """Nettoyage final avant fermeture."""
        remove_lockfile()
        logging.info("Nettoyage terminé.")


def main() -> None:
    """Point d'entrée principal."""
    setup_logging()

    if not check_single_instance():
        logging.info("Une autre instance est déjà en cours. Fermeture.")
        print("AutoBP est déjà en cours d'exécution.")
        sys.exit(0)

    app = None
    try:
        app = AutoBPApplication()
        app.run()
    except KeyboardInterrupt:
        logging.info("Interruption clavier détectée.")
    except Exception as e:
        logging.critical(f"Erreur fatale: {e}", exc_info=True)
    finally:
        if app is not None:
            app.quit_app()
        remove_lockfile()


if __name__ == "__main__":
    main()
