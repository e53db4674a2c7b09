# vitrine/core/query_cache.py
"""
Cache de consultas do cliente.

Guarda os resultados das leituras por chave (tupla) e é invalidado por prefixo
depois das mutações, como ("orders",) ou ("admin", "coupons").
Cada chave com busca em andamento tem uma geração: um resultado buscado enquanto a
chave foi invalidada é devolvido a quem pediu, mas não é guardado (resultado obsoleto descartado).
"""
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

Key = Tuple[Hashable, ...]


@dataclass
class _Entry:
    value: Any
    fetched_at: float


class QueryCache:

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[Key, _Entry] = {}
        self._generations: Dict[Key, int] = {}
        self._in_flight: Dict[Key, int] = {}
        self._clock = clock

    def fetch(self, key: Key, loader: Callable[[], Any], stale_time: Optional[float] = 0) -> Any:
        """
        Retorna o valor em cache se ainda estiver fresco, senão chama `loader`.
        stale_time=None: nunca expira; 0: sempre rebusca (mas mantém o último valor guardado).
        """
        key = tuple(key)
        entry = self._entries.get(key)
        if entry is not None and self._is_fresh(entry, stale_time):
            return entry.value

        generation = self._generations.setdefault(key, 0)
        self._in_flight[key] = self._in_flight.get(key, 0) + 1
        try:
            value = loader()
        finally:
            self._in_flight[key] -= 1
            if not self._in_flight[key]:
                del self._in_flight[key]

        if self._generations.get(key) == generation:
            self._entries[key] = _Entry(value=value, fetched_at=self._clock())
        self._forget_generation(key)
        return value

    def peek(self, key: Key, default=None) -> Any:
        entry = self._entries.get(tuple(key))
        return entry.value if entry is not None else default

    def invalidate(self, *prefix: Hashable):
        """Remove todas as chaves que começam com `prefix` (sem prefixo: limpa tudo)."""
        size = len(prefix)
        known = set(self._entries) | set(self._generations)
        for key in known:
            if key[:size] != prefix:
                continue
            self._entries.pop(key, None)
            if key in self._in_flight:
                self._generations[key] = self._generations.get(key, 0) + 1
            else:
                self._generations.pop(key, None)

    def _forget_generation(self, key: Key):
        # Sem valor guardado e sem busca em andamento, a geração não protege mais nada.
        if key not in self._in_flight and key not in self._entries:
            self._generations.pop(key, None)

    def _is_fresh(self, entry: _Entry, stale_time: Optional[float]) -> bool:
        if stale_time is None:
            return True
        return (self._clock() - entry.fetched_at) < stale_time

    def __contains__(self, key: Key) -> bool:
        return tuple(key) in self._entries
