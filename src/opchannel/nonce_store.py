import logging
import threading
from typing import Callable
from typing import Optional

from cryptojwt.jwt import utc_time_sans_frac
from idpyoidc.impexp import ImpExp

logger = logging.getLogger(__name__)


class NonceStore(object):

    def check_and_insert(self, context: str, nonce: str, expires_at: int) -> bool:
        """
        Record a nonce unless it has been seen before within its context.

        :param context: Who issued the nonce
        :param nonce: The nonce
        :param expires_at: Until when the record must be kept
        :return: True if the nonce was inserted, False if it is a duplicate
        """
        raise NotImplementedError()


class MemoryNonceStore(ImpExp, NonceStore):
    parameter = {
        "_db": {},
    }

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        ImpExp.__init__(self)
        self._db = {}
        self._lock = threading.Lock()
        self.clock = clock or utc_time_sans_frac

    @staticmethod
    def _key(context: str, nonce: str) -> str:
        return f"{context} {nonce}"

    def _purge(self, now: int):
        _expired = [k for k, exp in self._db.items() if exp < now]
        for key in _expired:
            del self._db[key]
        if _expired:
            logger.debug(f"Purged {len(_expired)} expired nonces")

    def check_and_insert(self, context: str, nonce: str, expires_at: int) -> bool:
        _key = self._key(context, nonce)
        with self._lock:
            self._purge(self.clock())
            if _key in self._db:
                return False
            self._db[_key] = expires_at
        return True

    def __contains__(self, item):
        context, nonce = item
        with self._lock:
            return self._key(context, nonce) in self._db

    def __len__(self):
        return len(self._db)
