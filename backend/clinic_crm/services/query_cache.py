"""Cache de consultas com janela de validade, assinaturas e invalidação por prefixo"""
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)

QueryKey = Tuple[Any, ...]


class QueryCache:
    """
    Resultados ficam válidos por `stale_seconds`; depois disso a próxima leitura
    busca de novo. `invalidate` remove todas as chaves que começam com o prefixo
    informado e avisa quem assinou aquele prefixo.
    """

    def __init__(self, stale_seconds: float = 60, clock: Callable[[], float] = time.monotonic):
        self.stale_seconds = stale_seconds
        self._clock = clock
        self._entries: Dict[QueryKey, Tuple[float, Any]] = {}
        self._subscribers: List[Tuple[QueryKey, Callable[[QueryKey], None]]] = []
        self._lock = threading.Lock()

    @staticmethod
    def _matches(key: QueryKey, prefix: QueryKey) -> bool:
        return key[:len(prefix)] == prefix

    def get(self, key: QueryKey, fetcher: Callable[[], Any]) -> Any:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
        if entry and now - entry[0] < self.stale_seconds:
            return entry[1]

        value = fetcher()
        with self._lock:
            self._entries[key] = (self._clock(), value)
        return value

    def subscribe(self, prefix: QueryKey, callback: Callable[[QueryKey], None]) -> Callable[[], None]:
        """Retorna uma função que cancela a assinatura"""
        subscription = (prefix, callback)
        with self._lock:
            self._subscribers.append(subscription)

        def unsubscribe() -> None:
            with self._lock:
                if subscription in self._subscribers:
                    self._subscribers.remove(subscription)

        return unsubscribe

    def invalidate(self, prefix: QueryKey = ()) -> int:
        with self._lock:
            stale_keys = [key for key in self._entries if self._matches(key, prefix)]
            for key in stale_keys:
                del self._entries[key]
            callbacks = [
                callback for sub_prefix, callback in self._subscribers
                if self._matches(prefix, sub_prefix) or self._matches(sub_prefix, prefix)
            ]

        for callback in callbacks:
            try:
                callback(prefix)
            except Exception as e:
                logger.error(f"Erro ao notificar assinante do cache {prefix}: {e}", exc_info=True)

        if stale_keys:
            logger.debug(f"Cache invalidado para {prefix}: {len(stale_keys)} entrada(s)")
        return len(stale_keys)
