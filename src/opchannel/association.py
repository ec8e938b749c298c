import base64
import binascii
import hashlib
import hmac
import logging
from typing import List
from typing import Optional
from typing import Tuple

from cryptojwt.jwt import utc_time_sans_frac
from idpyoidc.message import Message
from idpyoidc.message import SINGLE_REQUIRED_INT
from idpyoidc.message import SINGLE_REQUIRED_STRING
from idpyoidc.message.oidc import SINGLE_OPTIONAL_BOOLEAN

from opchannel.exception import DisallowedAlgorithm
from opchannel.kvform import seq_to_kv

logger = logging.getLogger(__name__)

# association type -> (hash function, secret size in bytes)
ASSOCIATION_TYPES = {
    "HMAC-SHA1": (hashlib.sha1, 20),
    "HMAC-SHA256": (hashlib.sha256, 32),
}


def secret_size(assoc_type: str) -> int:
    try:
        return ASSOCIATION_TYPES[assoc_type][1]
    except KeyError:
        raise DisallowedAlgorithm(f"Unknown association type: {assoc_type}")


def hash_function(assoc_type: str):
    try:
        return ASSOCIATION_TYPES[assoc_type][0]
    except KeyError:
        raise DisallowedAlgorithm(f"Unknown association type: {assoc_type}")


def to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def from_base64(data: str) -> bytes:
    return base64.b64decode(data.encode("ascii"), validate=True)


class Association(Message):
    """
    A secret shared between the Provider and a Relying Party, or kept by the
    Provider alone (a private association), that is used to MAC messages.
    """
    c_param = {
        "handle": SINGLE_REQUIRED_STRING,
        "secret": SINGLE_REQUIRED_STRING,
        "assoc_type": SINGLE_REQUIRED_STRING,
        "issued": SINGLE_REQUIRED_INT,
        "lifetime": SINGLE_REQUIRED_INT,
        "private": SINGLE_OPTIONAL_BOOLEAN
    }

    @property
    def expires_at(self) -> int:
        return self["issued"] + self["lifetime"]

    def expires_in(self, now: Optional[int] = None) -> int:
        if now is None:
            now = utc_time_sans_frac()
        return max(0, self.expires_at - now)

    def is_alive(self, now: Optional[int] = None) -> bool:
        return self.expires_in(now) > 0

    @property
    def is_private(self) -> bool:
        return self.get("private", False) is True

    @property
    def secret_bytes(self) -> bytes:
        return from_base64(self["secret"])

    def mac(self, pairs: List[Tuple[str, str]]) -> bytes:
        _hash = hash_function(self["assoc_type"])
        _data = seq_to_kv(pairs).encode("utf-8")
        return hmac.new(self.secret_bytes, _data, _hash).digest()

    def sign(self, pairs: List[Tuple[str, str]]) -> str:
        return to_base64(self.mac(pairs))

    def check_signature(self, pairs: List[Tuple[str, str]], sig: str) -> bool:
        try:
            _sig = from_base64(sig)
        except (binascii.Error, ValueError):
            logger.debug("Signature is not valid base64")
            return False
        return hmac.compare_digest(self.mac(pairs), _sig)
