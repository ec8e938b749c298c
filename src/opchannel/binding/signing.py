import logging
from typing import Callable
from typing import List
from typing import Optional
from typing import Tuple

from cryptojwt.jwt import utc_time_sans_frac

from opchannel.association import Association
from opchannel.association_store import AssociationStore
from opchannel.binding import BindingElement
from opchannel.binding import MessageProtection
from opchannel.binding import store_call
from opchannel.exception import AssociationStoreError
from opchannel.exception import DisallowedAlgorithm
from opchannel.exception import InsufficientSignatureCoverage
from opchannel.exception import InvalidAssociation
from opchannel.exception import InvalidSignature
from opchannel.exception import MalformedMessage
from opchannel.exception import MissingRequiredField
from opchannel.exception import ProtocolError
from opchannel.message import CheckAuthenticationRequest
from opchannel.message import NOT_SIGNED
from opchannel.message import OpenIDMessage
from opchannel.security import ProviderSecuritySettings

logger = logging.getLogger(__name__)


def signed_pairs(message: OpenIDMessage, signed: List[str]) -> List[Tuple[str, str]]:
    """
    Collect the (name, value) pairs a signature covers, in the order they
    appear in the signed list.
    """
    if len(set(signed)) != len(signed):
        raise MalformedMessage("Duplicate names in the signed list")

    pairs = []
    for field in signed:
        if not field:
            raise MalformedMessage("Empty name in the signed list")
        value = message.value_for_signature(field)
        if value is None:
            raise MalformedMessage(f"Signed field '{field}' is not in the message")
        if not isinstance(value, str) or "\n" in value:
            raise MalformedMessage(f"Signed field '{field}' can not be key-value encoded")
        pairs.append((field, value))
    return pairs


class ProviderSigningBindingElement(BindingElement):
    """
    Verifies signatures on messages the Relying Party sends back for
    verification and signs the assertions the Provider sends out.
    """
    name = "signing"
    protection = MessageProtection.TAMPER_PROTECTION

    def __init__(self,
                 association_store: AssociationStore,
                 security_settings: ProviderSecuritySettings,
                 clock: Optional[Callable[[], int]] = None):
        if association_store is None:
            raise ValueError("An association store is required")
        if security_settings is None:
            raise ValueError("Security settings are required")
        self.association_store = association_store
        self.security_settings = security_settings
        self.clock = clock or utc_time_sans_frac

    def find_association(self, handle: str) -> Optional[Association]:
        _store = self.association_store
        assoc = store_call(AssociationStoreError, _store.unwrap_private, handle)
        if assoc is None:
            assoc = store_call(AssociationStoreError, _store.lookup_shared, handle)
        return assoc

    def process(self, message: OpenIDMessage) -> Optional[MessageProtection]:
        if "sig" not in message:
            return None

        handle = message.get("assoc_handle")
        if not handle:
            raise MissingRequiredField("Signed message without assoc_handle")

        assoc = self.find_association(handle)
        if assoc is None:
            logger.info(f"Unknown or expired association: {handle}")
            raise InvalidAssociation(f"Unknown or expired association: {handle}", handle=handle)

        if isinstance(message, CheckAuthenticationRequest) and not assoc.is_private:
            # Only signatures made with private associations may be verified for an RP
            logger.warning(f"check_authentication using shared association {handle}")
            raise InvalidAssociation("Association is shared with a Relying Party",
                                     handle=handle)

        if not self.security_settings.is_allowed_association_type(assoc["assoc_type"]):
            raise DisallowedAlgorithm(f"Association type {assoc['assoc_type']} not allowed")

        if "signed" not in message:
            raise MissingRequiredField("Signed message without a signed list")
        signed = message.signed_list()

        pairs = signed_pairs(message, signed)
        if not assoc.check_signature(pairs, message["sig"]):
            logger.warning(f"Signature mismatch using association {handle}")
            raise InvalidSignature("Signature verification failed")

        _missing = [f for f in message.mandatory_signed_fields() if f not in signed]
        if _missing:
            raise InsufficientSignatureCoverage(f"Not signed: {', '.join(_missing)}")

        logger.debug(f"Verified signature over {len(signed)} fields")
        return self.protection

    def _reusable(self, handle: str) -> Optional[Association]:
        assoc = store_call(AssociationStoreError, self.association_store.lookup_shared, handle)
        if assoc is None or assoc.is_private:
            return None
        if not self.security_settings.is_allowed_association_type(assoc["assoc_type"]):
            return None
        if assoc.expires_in(self.clock()) <= self.security_settings.minimum_association_lifetime:
            logger.debug(f"Association {handle} is too close to expiry to be used")
            return None
        return assoc

    def _private_association(self) -> Association:
        _settings = self.security_settings
        _type = _settings.private_association_type
        _lifetime = _settings.private_association_lifetime
        _store = self.association_store
        if _settings.allow_stateless_associations:
            handle = store_call(AssociationStoreError, _store.mint_private, _type, _lifetime)
            assoc = store_call(AssociationStoreError, _store.unwrap_private, handle)
            if assoc is None:
                raise ProtocolError("Could not read back a freshly minted association")
            return assoc
        return store_call(AssociationStoreError, _store.mint_shared, _type, _lifetime,
                          private=True)

    def prepare(self, message: OpenIDMessage) -> Optional[MessageProtection]:
        if not message.requires_signature:
            return None

        assoc = None
        handle = message.get("assoc_handle")
        if handle:
            assoc = self._reusable(handle)
            if assoc is None:
                logger.info(f"Relying Party asked for unusable association {handle}")
                message["invalidate_handle"] = handle

        if assoc is None:
            assoc = self._private_association()

        message["assoc_handle"] = assoc["handle"]
        message.signing_association = assoc
        return self.protection

    def signed_fields(self, message: OpenIDMessage) -> List[str]:
        mandated = message.mandatory_signed_fields()
        _missing = [f for f in mandated if f not in message]
        if _missing:
            raise InsufficientSignatureCoverage(f"Can not sign absent: {', '.join(_missing)}")

        _rest = sorted(k for k in message.protocol_keys() if k not in mandated and
                       k not in NOT_SIGNED)
        return mandated + _rest + list(message.extension_signable)

    def seal(self, message: OpenIDMessage) -> Optional[MessageProtection]:
        if not message.requires_signature:
            return None

        assoc = getattr(message, "signing_association", None)
        if assoc is None:
            raise ProtocolError("Message has not been bound to an association")

        signed = self.signed_fields(message)
        message["signed"] = ",".join(signed)
        message["sig"] = assoc.sign(signed_pairs(message, signed))
        logger.debug(f"Signed {len(signed)} fields with {assoc['assoc_type']}")
        return self.protection
