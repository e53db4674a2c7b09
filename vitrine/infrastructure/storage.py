# vitrine/infrastructure/storage.py
"""
Armazenamento do estado local (carrinho e lista de desejos).

Cada meio de armazenamento fornece um repositório por chave com a interface
`load() -> dict | None` / `save(dict)` / `clear()`. O meio é trocável: disco,
sessão do Django ou memória (testes).
"""
import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from vitrine.core.ports import IStateRepository, IStateStorage

logger = logging.getLogger(__name__)


# ====================================================================
# MEMÓRIA
# ====================================================================

class InMemoryStateRepository(IStateRepository):

    def __init__(self, blobs: Dict[str, Any], key: str):
        self._blobs = blobs
        self.key = key

    def load(self) -> Optional[Dict[str, Any]]:
        state = self._blobs.get(self.key)
        return copy.deepcopy(state) if state is not None else None

    def save(self, state: Dict[str, Any]):
        self._blobs[self.key] = copy.deepcopy(state)

    def clear(self):
        self._blobs.pop(self.key, None)


class InMemoryStorage(IStateStorage):
    """Armazenamento volátil; compartilhado entre as stores da mesma instância."""

    def __init__(self):
        self.blobs: Dict[str, Any] = {}

    def repository(self, key: str) -> InMemoryStateRepository:
        return InMemoryStateRepository(self.blobs, key)


# ====================================================================
# DISCO (um arquivo JSON por chave)
# ====================================================================

class JsonFileStateRepository(IStateRepository):

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            with self.path.open('r', encoding='utf-8') as fp:
                state = json.load(fp)
        except (OSError, ValueError) as e:
            logger.warning("Estado persistido ilegível em %s, descartando: %s", self.path, e)
            return None
        if not isinstance(state, dict):
            logger.warning("Estado persistido em %s não é um objeto JSON, descartando.", self.path)
            return None
        return state

    def save(self, state: Dict[str, Any]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Grava em arquivo temporário e substitui: nunca deixa um JSON pela metade.
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as fp:
                json.dump(state, fp, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def clear(self):
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


class JsonFileStorage(IStateStorage):

    def __init__(self, directory):
        self.directory = Path(directory).expanduser()

    def repository(self, key: str) -> JsonFileStateRepository:
        return JsonFileStateRepository(self.directory / f"{key}.json")


# ====================================================================
# SESSÃO DO DJANGO
# ====================================================================

class DjangoSessionStateRepository(IStateRepository):

    def __init__(self, session, key: str):
        self.session = session
        self.key = key

    def load(self) -> Optional[Dict[str, Any]]:
        state = self.session.get(self.key)
        return state if isinstance(state, dict) else None

    def save(self, state: Dict[str, Any]):
        self.session[self.key] = state
        self.session.modified = True

    def clear(self):
        if self.key in self.session:
            del self.session[self.key]
            self.session.modified = True


class DjangoSessionStorage(IStateStorage):
    """Persiste o snapshot na sessão do Django (request.session) de quem embute a vitrine num site."""

    def __init__(self, session):
        self.session = session

    def repository(self, key: str) -> DjangoSessionStateRepository:
        return DjangoSessionStateRepository(self.session, key)
