"""
Emplacements de snapshot - Persistance de la copie de travail locale
=====================================================================

Un emplacement stocke un texte JSON par clé (une clé par collection, plus la file
des écritures en attente). Chaque écriture change la version de la clé: une vue qui
garde une version différente sait que sa copie est périmée et doit relire.

Implémentations:
- MemorySlot: en mémoire du processus (défaut, tests)
- FileSlot: un fichier JSON par clé, remplacement atomique
"""

import itertools
import logging
import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod
from typing import Any, Optional

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r'[^A-Za-z0-9_.-]')


class SnapshotSlot(ABC):
    """Interface d'un emplacement de snapshot"""

    @abstractmethod
    def read(self, key: str) -> Optional[str]:
        """Retourne le texte stocké, ou None si la clé n'a jamais été écrite"""
        pass

    @abstractmethod
    def write(self, key: str, text: str) -> None:
        pass

    @abstractmethod
    def version(self, key: str) -> Any:
        """Jeton comparable qui change à chaque écriture (None si absent)"""
        pass


class MemorySlot(SnapshotSlot):
    """Emplacement en mémoire, partagé par toutes les vues d'un même utilisateur"""

    _counter = itertools.count(1)

    def __init__(self):
        self._values = {}
        self._versions = {}
        self._lock = threading.Lock()

    def read(self, key: str) -> Optional[str]:
        with self._lock:
            return self._values.get(key)

    def write(self, key: str, text: str) -> None:
        with self._lock:
            self._values[key] = text
            self._versions[key] = next(self._counter)

    def version(self, key: str) -> Any:
        with self._lock:
            return self._versions.get(key)


class FileSlot(SnapshotSlot):
    """
    Emplacement sur disque: {directory}/{key}.json

    L'écriture passe par un fichier temporaire puis os.replace, ce qui garantit
    qu'un lecteur voit toujours un snapshot complet.
    """

    def __init__(self, directory: str):
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{_SAFE_KEY.sub('_', key)}.json")

    def read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()

    def write(self, key: str, text: str) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{_SAFE_KEY.sub('_', key)}.", suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(text)
            os.replace(tmp_path, self._path(key))
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def version(self, key: str) -> Any:
        try:
            stat = os.stat(self._path(key))
        except FileNotFoundError:
            return None
        # Nouveau fichier à chaque écriture: l'inode change même à mtime égal
        return (stat.st_ino, stat.st_mtime_ns, stat.st_size)


def slot_directory_for(base_dir: str, user_id: str) -> str:
    """Dossier des snapshots d'un utilisateur"""
    return os.path.join(base_dir, _SAFE_KEY.sub('_', user_id))
