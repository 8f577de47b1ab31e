"""
AUTOBP - Catalogue des champions
--------------------------------
Noms et IDs des champions issus de Data Dragon, avec cache local.
L'automatisation ne manipule que des IDs : le catalogue sert à l'affichage
et à la saisie des réglages par nom.
"""

import os
import re
import json
import logging
import unicodedata
from threading import Lock
from typing import Optional, Dict, Any, List

import requests

from .config import (
    URL_DD_VERSIONS, URL_DD_CHAMPIONS, DDRAGON_LOCALE, DDRAGON_TIMEOUT,
    CHAMPIONS_CACHE_FILE
)


class ChampionCatalog:
    """
    Gestionnaire des données Data Dragon (champions).
    Gère le cache local et la mise à jour à chaque nouveau patch.
    """

    def __init__(self, cache_file: Optional[str] = None, locale: str = DDRAGON_LOCALE):
        self.cache_file: str = cache_file or CHAMPIONS_CACHE_FILE
        self.locale: str = locale
        self.version: str = ""
        self.name_by_id: Dict[int, str] = {}
        self.by_norm_name: Dict[str, int] = {}
        self._lock = Lock()

    @staticmethod
    def _normalize(s: str) -> str:
        """Normalise un nom pour la recherche (minuscules, sans accents, sans espaces)."""
        s = s.strip().lower()
        s = unicodedata.normalize('NFD', s)
        s = ''.join(c for c in s if unicodedata.category(c) != 'Mn')
        s = re.sub(r"[^a-z0-9]+", "", s)
        return s

    def _index(self, version: str, champions: Dict[int, str], aliases: Optional[Dict[str, int]] = None) -> None:
        by_norm = {self._normalize(name): cid for cid, name in champions.items()}
        by_norm.update(aliases or {})
        with self._lock:
            self.version = version
            self.name_by_id = dict(champions)
            self.by_norm_name = by_norm

    @property
    def loaded(self) -> bool:
        with self._lock:
            return bool(self.name_by_id)

    # ───────────────────────────────────────────────────────────────────────
    # CACHE LOCAL
    # ───────────────────────────────────────────────────────────────────────

    def load_from_cache(self) -> bool:
        """Charge les données depuis le fichier cache. False si absent ou illisible."""
        if not os.path.exists(self.cache_file):
            return False
        try:
            with open(self.cache_file, "r", encoding="utf-8") as f:
                payload = json.load(f)
            champions = {
                int(entry["id"]): str(entry["name"])
                for entry in payload.get("data", {}).values()
            }
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logging.warning(f"Champions: Erreur cache - {e}")
            return False

        self._index(payload.get("version", ""), champions)
        return True

    def save_cache(self) -> bool:
        """Sauvegarde les données dans le fichier cache."""
        with self._lock:
            payload = {
                "version": self.version,
                "data": {str(cid): {"id": cid, "name": name} for cid, name in self.name_by_id.items()},
            }
        try:
            directory = os.path.dirname(self.cache_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.cache_file, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            return True
        except OSError as e:
            logging.warning(f"Champions: Erreur sauvegarde cache - {e}")
            return False

    # ───────────────────────────────────────────────────────────────────────
    # DATA DRAGON
    # ───────────────────────────────────────────────────────────────────────

    def get_latest_version(self) -> Optional[str]:
        """Dernière version publiée sur Data Dragon, ou None si injoignable."""
        try:
            r = requests.get(URL_DD_VERSIONS, timeout=DDRAGON_TIMEOUT)
            r.raise_for_status()
            versions = r.json()
        except (requests.RequestException, ValueError) as e:
            logging.warning(f"Champions: Version Data Dragon indisponible - {e}")
            return None
        if not isinstance(versions, list) or not versions:
            logging.warning("Champions: Aucune version Data Dragon trouvée")
            return None
        return str(versions[0])

    def fetch_champions(self, version: str) -> bool:
        """Télécharge champion.json pour une version donnée."""
        url = URL_DD_CHAMPIONS.format(version=version, locale=self.locale)
        try:
            r = requests.get(url, timeout=DDRAGON_TIMEOUT)
            r.raise_for_status()
            data = r.json().get("data", {})
        except (requests.RequestException, ValueError, AttributeError) as e:
            logging.warning(f"Champions: Erreur téléchargement - {e}")
            return False

        champions: Dict[int, str] = {}
        aliases: Dict[str, int] = {}
        for slug, info in data.items():
            try:
                cid = int(info.get("key"))
            except (TypeError, ValueError):
                continue
            champions[cid] = info.get("name") or slug
            aliases[self._normalize(info.get("id", slug))] = cid

        if not champions:
            logging.warning("Champions: champion.json vide")
            return False

        self._index(version, champions, aliases)
        return True

    def update_if_needed(self) -> bool:
        """
        Met à jour le catalogue si un nouveau patch est sorti.

        Returns:
            True si les données ont été renouvelées
        """
        latest = self.get_latest_version()
        if not latest or latest == self.version:
            return False

        logging.info(f"Champions: Mise à jour {self.version or '(aucune)'} -> {latest}")
        if not self.fetch_champions(latest):
            return False
        self.save_cache()
        return True

    def load(self) -> None:
        """Cache local puis mise à jour en ligne. Les erreurs réseau gardent les données existantes."""
        self.load_from_cache()
        self.update_if_needed()

    # ───────────────────────────────────────────────────────────────────────
    # RECHERCHE
    # ───────────────────────────────────────────────────────────────────────

    def resolve_champion(self, name_or_id: Any) -> Optional[int]:
        """Résout un nom ou ID de champion vers son ID numérique."""
        if name_or_id is None or isinstance(name_or_id, bool):
            return None
        try:
            return int(name_or_id)
        except (ValueError, TypeError):
            pass
        with self._lock:
            return self.by_norm_name.get(self._normalize(str(name_or_id)))

    def id_to_name(self, cid: Optional[int]) -> Optional[str]:
        with self._lock:
            return self.name_by_id.get(cid)

    def describe(self, cid: Optional[int]) -> str:
        """Nom lisible pour les logs, ex: "Jarvan IV (59)"."""
        name = self.id_to_name(cid)
        return f"{name} ({cid})" if name else str(cid)

    def get_champions(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [{"id": cid, "name": name} for cid, name in sorted(self.name_by_id.items(), key=lambda kv: kv[1])]
