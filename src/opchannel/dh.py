"""Server side of the session types used when a Relying Party asks for an association."""
import hashlib
import logging
import os
from typing import Callable
from typing import Optional

from opchannel.association import from_base64
from opchannel.association import to_base64
from opchannel.exception import MalformedMessage

logger = logging.getLogger(__name__)

# The default modulus from appendix B of OpenID Authentication 2.0
DEFAULT_DH_MODULUS = int(
    "DCF93A0B883972EC0E19989AC5A2CE310E1D37717E8D9571BB7623731866E61E"
    "F75A2E27898B057F9891C2E27A639C3F29B60814581CD3B2CA3986D268370557"
    "7D45C2E7E52DC81C7A171876E5CEA74B1448BFDFAF18828EFD2519F14E45E382"
    "6634AF1949E5B535CC829A483B8A76223E5D490A257F05BDFF16F2FB22C583AB", 16)
DEFAULT_DH_GEN = 2


def long_to_btwoc(value: int) -> bytes:
    """Big-endian two's complement, as short as possible."""
    return value.to_bytes(value.bit_length() // 8 + 1, "big")


def btwoc_to_long(value: bytes) -> int:
    return int.from_bytes(value, "big")


def long_to_base64(value: int) -> str:
    return to_base64(long_to_btwoc(value))


def base64_to_long(value: str) -> int:
    try:
        return btwoc_to_long(from_base64(value))
    except ValueError:
        raise MalformedMessage(f"Not a base64 encoded number: {value!r}")


class NoEncryptionSession(object):
    session_type = "no-encryption"
    allowed_assoc_types = ["HMAC-SHA1", "HMAC-SHA256"]

    @classmethod
    def from_request(cls, request, rng=None):
        return cls()

    def answer(self, secret: bytes) -> dict:
        return {"mac_key": to_base64(secret)}


class DiffieHellmanSHA1Session(object):
    session_type = "DH-SHA1"
    hash_func = staticmethod(hashlib.sha1)
    allowed_assoc_types = ["HMAC-SHA1"]

    def __init__(self,
                 consumer_public: int,
                 modulus: Optional[int] = DEFAULT_DH_MODULUS,
                 generator: Optional[int] = DEFAULT_DH_GEN,
                 rng: Optional[Callable[[int], bytes]] = None):
        if modulus < 3 or generator < 2:
            raise MalformedMessage("Bad Diffie-Hellman parameters")
        if not 1 < consumer_public < modulus - 1:
            raise MalformedMessage("dh_consumer_public out of range")

        self.modulus = modulus
        self.generator = generator
        self.consumer_public = consumer_public
        _rng = rng or os.urandom
        _size = (modulus.bit_length() + 7) // 8
        self.private = btwoc_to_long(_rng(_size)) % (modulus - 2) + 1
        self.public = pow(generator, self.private, modulus)

    @classmethod
    def from_request(cls, request, rng=None):
        _modulus = request.get("dh_modulus")
        _gen = request.get("dh_gen")
        return cls(
            consumer_public=base64_to_long(request["dh_consumer_public"]),
            modulus=base64_to_long(_modulus) if _modulus else DEFAULT_DH_MODULUS,
            generator=base64_to_long(_gen) if _gen else DEFAULT_DH_GEN,
            rng=rng)

    def shared_secret(self) -> int:
        return pow(self.consumer_public, self.private, self.modulus)

    def xor_secret(self, secret: bytes) -> bytes:
        _hashed = self.hash_func(long_to_btwoc(self.shared_secret())).digest()
        if len(_hashed) != len(secret):
            raise ValueError("MAC key and hash length differ")
        return bytes(a ^ b for a, b in zip(_hashed, secret))

    def answer(self, secret: bytes) -> dict:
        return {
            "dh_server_public": long_to_base64(self.public),
            "enc_mac_key": to_base64(self.xor_secret(secret)),
        }


class DiffieHellmanSHA256Session(DiffieHellmanSHA1Session):
    session_type = "DH-SHA256"
    hash_func = staticmethod(hashlib.sha256)
    allowed_assoc_types = ["HMAC-SHA256"]


SESSION_TYPES = {
    "no-encryption": NoEncryptionSession,
    "DH-SHA1": DiffieHellmanSHA1Session,
    "DH-SHA256": DiffieHellmanSHA256Session,
}
