"""
AUTOBP - Module Utilitaires
---------------------------
Fonctions utilitaires: lockfile d'instance unique.
"""

import os
import logging
from typing import Optional

import psutil

from .config import LOCKFILE_PATH


# ───────────────────────────────────────────────────────────────────────────
# SINGLE INSTANCE (LOCKFILE)
# ───────────────────────────────────────────────────────────────────────────

def check_single_instance(lockfile_path: Optional[str] = None) -> bool:
    """
    Vérifie qu'une seule instance de l'application est en cours.

    Returns:
        True si cette instance peut continuer, False si une autre existe déjà
    """
    lockfile_path = lockfile_path or LOCKFILE_PATH
    if os.path.exists(lockfile_path):
        try:
            with open(lockfile_path, 'r') as f:
                pid = int(f.read())
            if pid != os.getpid() and psutil.pid_exists(pid):
                logging.info(f"Instance existante détectée (PID: {pid})")
                return False
        except (ValueError, IOError):
            pass

    # Créer/mettre à jour le lockfile
    try:
        with open(lockfile_path, 'w') as f:
            f.write(str(os.getpid()))
    except IOError as e:
        logging.warning(f"Lockfile non écrit: {e}")

    return True


def remove_lockfile(lockfile_path: Optional[str] = None) -> None:
    """Supprime le lockfile lors de la fermeture."""
    lockfile_path = lockfile_path or LOCKFILE_PATH
    try:
        if os.path.exists(lockfile_path):
            os.remove(lockfile_path)
    except IOError:
        pass
