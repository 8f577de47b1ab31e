"""
AUTOBP - Erreurs
----------------
Hiérarchie des exceptions levées par le transport LCU et le décodage des événements.
"""

from typing import Any, Optional


class AutoBPError(Exception):
    """Base de toutes les erreurs AutoBP."""


class LCUError(AutoBPError):
    """Erreur liée à la communication avec le client LCU."""


class CredentialsNotFoundError(LCUError):
    """Le processus LeagueClientUx est introuvable (client non lancé)."""


class ConnectFailedError(LCUError):
    """Le client a été trouvé mais la connexion HTTPS a échoué."""


class HandshakeFailedError(LCUError):
    """L'ouverture du WebSocket d'événements a échoué."""


class NotConnectedError(LCUError):
    """Opération tentée sans connexion active au client."""

    def __init__(self, message: str = "LCU not connected"):
        super().__init__(message)


class LCURequestError(LCUError):
    """Erreur réseau ou timeout pendant une requête."""


class HTTPStatusError(LCUError):
    """Réponse non 2xx du client."""

    def __init__(self, status: int, body: Optional[Any] = None, method: str = "", path: str = ""):
        self.status = status
        self.body = body
        self.method = method
        self.path = path
        super().__init__(f"HTTP {status} sur {method} {path}".strip())


class MalformedEventError(AutoBPError):
    """Trame du canal d'événements impossible à décoder."""
