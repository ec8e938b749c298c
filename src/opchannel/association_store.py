import logging
import os
import threading
from typing import Callable
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.keywrap import InvalidUnwrap
from cryptojwt.exception import JWKESTException
from cryptojwt.jwe.jwe import JWE
from cryptojwt.jwk.hmac import SYMKey
from cryptojwt.jwt import utc_time_sans_frac
from cryptojwt.utils import as_bytes
from cryptojwt.utils import as_unicode
from cryptojwt.utils import b64e
from idpyoidc.impexp import ImpExp

from opchannel.association import Association
from opchannel.association import secret_size
from opchannel.association import to_base64
from opchannel.exception import AssociationStoreError

logger = logging.getLogger(__name__)

# Key wrapping plus GCM keeps a self-contained handle well below the
# 255 characters an OpenID association handle may have.
HANDLE_KEY_WRAP = "A128KW"
HANDLE_ENCRYPTION = "A128GCM"
HANDLE_SEP = "|"
MAX_HANDLE_LENGTH = 255


class AssociationStore(object):
    """The operations the signing binding element expects from a key store."""

    def mint_shared(self, assoc_type: str, lifetime: int, private: bool = False) -> Association:
        raise NotImplementedError()

    def mint_private(self, assoc_type: str, lifetime: int) -> str:
        raise NotImplementedError()

    def lookup_shared(self, handle: str) -> Optional[Association]:
        raise NotImplementedError()

    def unwrap_private(self, handle: str) -> Optional[Association]:
        raise NotImplementedError()

    def revoke(self, handle: str):
        raise NotImplementedError()


class MemoryAssociationStore(ImpExp, AssociationStore):
    """
    Keeps shared associations in memory and encodes private associations
    in the handle itself. A handle of the latter kind is a JWE, encrypted
    with a key only this store knows, carrying the association secret.

    The key is not part of a dump. A store loaded from a dump can only
    unwrap the handles issued before if it was given the same
    encryption_key.
    """
    parameter = {
        "_db": {},
        "_revoked": {},
    }

    def __init__(self,
                 encryption_key: Optional[str] = None,
                 rng: Optional[Callable[[int], bytes]] = None,
                 clock: Optional[Callable[[], int]] = None):
        ImpExp.__init__(self)
        self._db = {}
        self._revoked = {}
        self._lock = threading.Lock()
        self.rng = rng or os.urandom
        self.clock = clock or utc_time_sans_frac
        if encryption_key is None:
            self._key = SYMKey(key=self.rng(32))
        else:
            self._key = SYMKey(key=as_bytes(encryption_key))

    def _new_handle(self, assoc_type: str, now: int) -> str:
        _uniq = as_unicode(b64e(self.rng(6)))
        return f"{{{assoc_type}}}{{{now:x}}}{{{_uniq}}}"

    def _purge(self, now: int):
        _expired = [h for h, info in self._db.items()
                    if info["issued"] + info["lifetime"] <= now]
        for handle in _expired:
            del self._db[handle]
        self._revoked = {h: exp for h, exp in self._revoked.items() if exp > now}
        if _expired:
            logger.debug(f"Purged {len(_expired)} expired associations")

    def mint_shared(self, assoc_type: str, lifetime: int, private: bool = False) -> Association:
        now = self.clock()
        _secret = self.rng(secret_size(assoc_type))
        assoc = Association(handle=self._new_handle(assoc_type, now), secret=to_base64(_secret),
                            assoc_type=assoc_type, issued=now, lifetime=lifetime,
                            private=private)
        with self._lock:
            self._purge(now)
            self._db[assoc["handle"]] = assoc.to_dict()
        logger.debug(f"Minted {'private' if private else 'shared'} association {assoc['handle']}")
        return assoc

    def mint_private(self, assoc_type: str, lifetime: int) -> str:
        now = self.clock()
        _secret = self.rng(secret_size(assoc_type))
        _payload = HANDLE_SEP.join([assoc_type, str(now), str(lifetime), to_base64(_secret)])
        _jwe = JWE(_payload, alg=HANDLE_KEY_WRAP, enc=HANDLE_ENCRYPTION)
        handle = as_unicode(_jwe.encrypt(keys=[self._key], cek=self.rng(16), iv=self.rng(12)))
        if len(handle) > MAX_HANDLE_LENGTH:
            raise AssociationStoreError(f"Stateless handle too long: {len(handle)} characters")
        logger.debug(f"Minted stateless {assoc_type} association")
        return handle

    def lookup_shared(self, handle: str) -> Optional[Association]:
        with self._lock:
            _info = self._db.get(handle)
            if _info is None:
                return None
            assoc = Association(**_info)
            if not assoc.is_alive(self.clock()):
                logger.debug(f"Association {handle} has expired")
                del self._db[handle]
                return None
        return assoc

    def _decode(self, handle: str) -> Optional[Association]:
        if not handle or handle.count(".") != 4:
            return None

        try:
            _payload = JWE().decrypt(handle, keys=[self._key])
        except (JWKESTException, InvalidUnwrap, InvalidTag, KeyError, ValueError) as err:
            logger.debug(f"Could not unwrap handle: {err}")
            return None

        try:
            assoc_type, issued, lifetime, secret = as_unicode(_payload).split(HANDLE_SEP)
            return Association(handle=handle, secret=secret, assoc_type=assoc_type,
                               issued=int(issued), lifetime=int(lifetime), private=True)
        except ValueError:
            logger.warning("Decrypted handle with unexpected content")
            return None

    def unwrap_private(self, handle: str) -> Optional[Association]:
        assoc = self._decode(handle)
        if assoc is None:
            return None

        now = self.clock()
        with self._lock:
            if handle in self._revoked:
                logger.debug("Stateless association has been revoked")
                return None

        if not assoc.is_alive(now):
            logger.debug("Stateless association has expired")
            return None
        return assoc

    def revoke(self, handle: str):
        now = self.clock()
        with self._lock:
            self._purge(now)
            if handle in self._db:
                del self._db[handle]
                return

        assoc = self._decode(handle)
        if assoc is not None and assoc.is_alive(now):
            with self._lock:
                # Only needs remembering as long as the handle would be valid
                self._revoked[handle] = assoc.expires_at

    def __contains__(self, handle):
        return handle in self._db

    def __len__(self):
        return len(self._db)
