"""AutoBP - acceptation, préselection, ban et pick automatiques pour le client League of Legends."""

from .config import CURRENT_VERSION as __version__
