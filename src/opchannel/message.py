""" Classes used to describe the OpenID 2.0 messages a Provider receives and sends."""
import logging
from typing import List
from typing import Optional

from idpyoidc.message import Message
from idpyoidc.message import SINGLE_OPTIONAL_STRING
from idpyoidc.message import SINGLE_REQUIRED_STRING

from opchannel.exception import MessageSealed

LOGGER = logging.getLogger(__name__)

OPENID2_NS = "http://specs.openid.net/auth/2.0"
IDENTIFIER_SELECT = "http://specs.openid.net/auth/2.0/identifier_select"
OPENID_PREFIX = "openid."

# Parameters that never go into the signed list.
NOT_SIGNED = ["sig", "signed"]


class OpenIDMessage(Message):
    """
    Base class for all OpenID 2.0 messages. Parameter names are kept without
    the 'openid.' prefix. Extension parameters live among the extra parameters.
    """
    c_param = {
        "ns": SINGLE_REQUIRED_STRING,
        "mode": SINGLE_OPTIONAL_STRING,
    }
    # Values filled in when the parameter is missing.
    wire_defaults = {"ns": OPENID2_NS}

    # Value of openid.mode for this kind of message, empty if there is none.
    message_mode = ""
    # Direct messages travel server to server, indirect via the user agent.
    direct = True
    is_request = True
    requires_signature = False
    carries_nonce = False
    # Fields that must be part of the signature, in the order they are signed.
    signed_fields = []
    # The mode used when reconstructing the signed string, if it differs.
    signature_mode = ""

    def __init__(self, set_defaults=True, **kwargs):
        self._sealed = False
        self.extensions = []
        self.extension_signable = []
        self.recipient = ""
        self.signing_association = None
        self.protections = 0
        Message.__init__(self, set_defaults=set_defaults, **kwargs)
        if set_defaults:
            for key, val in self.wire_defaults.items():
                if key not in self:
                    self[key] = val
        if self.message_mode and "mode" not in self:
            self["mode"] = self.message_mode

    def __setitem__(self, key, value):
        if getattr(self, "_sealed", False):
            raise MessageSealed(f"Can not set '{key}' on a sealed message")
        Message.__setitem__(self, key, value)

    def __delitem__(self, key):
        if getattr(self, "_sealed", False):
            raise MessageSealed(f"Can not remove '{key}' from a sealed message")
        Message.__delitem__(self, key)

    def seal(self):
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def protocol_keys(self) -> List[str]:
        """Parameter names that do not belong to an extension."""
        _ext = self.extension_aliases()
        res = []
        for key in self.keys():
            if key.startswith("ns."):
                continue
            if key.split(".", 1)[0] in _ext:
                continue
            res.append(key)
        return res

    def extension_aliases(self) -> List[str]:
        return [k[3:] for k in self.keys() if k.startswith("ns.")]

    def mandatory_signed_fields(self) -> List[str]:
        """The fields the signature must cover."""
        return list(self.signed_fields)

    def signed_list(self) -> List[str]:
        if "signed" not in self:
            return []
        return self["signed"].split(",")

    def value_for_signature(self, field: str) -> Optional[str]:
        if field == "mode" and self.signature_mode:
            return self.signature_mode
        return self.get(field)

    def to_wire(self) -> dict:
        return {f"{OPENID_PREFIX}{k}": v for k, v in self.items()}


class AssociateRequest(OpenIDMessage):
    c_param = OpenIDMessage.c_param.copy()
    c_param.update({
        "assoc_type": SINGLE_REQUIRED_STRING,
        "session_type": SINGLE_REQUIRED_STRING,
        "dh_modulus": SINGLE_OPTIONAL_STRING,
        "dh_gen": SINGLE_OPTIONAL_STRING,
        "dh_consumer_public": SINGLE_OPTIONAL_STRING,
    })
    message_mode = "associate"

    def verify(self, **kwargs):
        super(AssociateRequest, self).verify(**kwargs)
        if self["session_type"] != "no-encryption" and "dh_consumer_public" not in self:
            raise ValueError("dh_consumer_public is a MUST for Diffie-Hellman sessions")
        return True


class AssociateSuccessResponse(OpenIDMessage):
    c_param = OpenIDMessage.c_param.copy()
    c_param.update({
        "assoc_handle": SINGLE_REQUIRED_STRING,
        "session_type": SINGLE_REQUIRED_STRING,
        "assoc_type": SINGLE_REQUIRED_STRING,
        "expires_in": SINGLE_REQUIRED_STRING,
        "mac_key": SINGLE_OPTIONAL_STRING,
        "dh_server_public": SINGLE_OPTIONAL_STRING,
        "enc_mac_key": SINGLE_OPTIONAL_STRING,
    })
    is_request = False


class AssociateUnsuccessfulResponse(OpenIDMessage):
    c_param = OpenIDMessage.c_param.copy()
    c_param.update({
        "error": SINGLE_REQUIRED_STRING,
        "error_code": SINGLE_REQUIRED_STRING,
        "session_type": SINGLE_OPTIONAL_STRING,
        "assoc_type": SINGLE_OPTIONAL_STRING,
    })
    wire_defaults = {"ns": OPENID2_NS, "error_code": "unsupported-type"}
    is_request = False


class CheckIdRequest(OpenIDMessage):
    c_param = OpenIDMessage.c_param.copy()
    c_param.update({
        "claimed_id": SINGLE_OPTIONAL_STRING,
        "identity": SINGLE_OPTIONAL_STRING,
        "assoc_handle": SINGLE_OPTIONAL_STRING,
        "return_to": SINGLE_OPTIONAL_STRING,
        "realm": SINGLE_OPTIONAL_STRING,
    })
    direct = False
    message_mode = "checkid_setup"

    @property
    def immediate(self) -> bool:
        return self.get("mode") == "checkid_immediate"

    def verify(self, **kwargs):
        super(CheckIdRequest, self).verify(**kwargs)
        if "return_to" not in self and "realm" not in self:
            raise ValueError("One of return_to and realm MUST be present")
        if ("claimed_id" in self) != ("identity" in self):
            raise ValueError("claimed_id and identity must either both be present or both absent")
        return True


class CheckIdImmediateRequest(CheckIdRequest):
    message_mode = "checkid_immediate"


class PositiveAssertion(OpenIDMessage):
    c_param = OpenIDMessage.c_param.copy()
    c_param.update({
        "op_endpoint": SINGLE_REQUIRED_STRING,
        "claimed_id": SINGLE_OPTIONAL_STRING,
        "identity": SINGLE_OPTIONAL_STRING,
        "return_to": SINGLE_REQUIRED_STRING,
        "response_nonce": SINGLE_OPTIONAL_STRING,
        "invalidate_handle": SINGLE_OPTIONAL_STRING,
        "assoc_handle": SINGLE_OPTIONAL_STRING,
        "signed": SINGLE_OPTIONAL_STRING,
        "sig": SINGLE_OPTIONAL_STRING,
    })
    message_mode = "id_res"
    direct = False
    is_request = False
    requires_signature = True
    carries_nonce = True
    signed_fields = ["op_endpoint", "return_to", "response_nonce", "assoc_handle",
                     "claimed_id", "identity"]


class NegativeAssertion(OpenIDMessage):
    c_param = OpenIDMessage.c_param.copy()
    c_param.update({
        "return_to": SINGLE_OPTIONAL_STRING,
    })
    message_mode = "cancel"
    direct = False
    is_request = False


class SetupNeededAssertion(NegativeAssertion):
    message_mode = "setup_needed"


class CheckAuthenticationRequest(PositiveAssertion):
    """
    The RP sends back an exact copy of the positive assertion, except for
    openid.mode. The signature is therefore computed as if mode was id_res.
    """
    c_param = PositiveAssertion.c_param.copy()
    c_param.update({
        "response_nonce": SINGLE_REQUIRED_STRING,
        "assoc_handle": SINGLE_REQUIRED_STRING,
        "signed": SINGLE_REQUIRED_STRING,
        "sig": SINGLE_REQUIRED_STRING,
    })
    message_mode = "check_authentication"
    direct = True
    # The extensions it carries are those of the assertion
    is_request = False
    # Signatures are verified on ingress, never produced.
    requires_signature = False
    signature_mode = "id_res"


class CheckAuthenticationResponse(OpenIDMessage):
    c_param = OpenIDMessage.c_param.copy()
    c_param.update({
        "is_valid": SINGLE_REQUIRED_STRING,
        "invalidate_handle": SINGLE_OPTIONAL_STRING,
    })
    is_request = False

    def verify(self, **kwargs):
        super(CheckAuthenticationResponse, self).verify(**kwargs)
        if self["is_valid"] not in ("true", "false"):
            raise ValueError(f"is_valid must be 'true' or 'false', not {self['is_valid']!r}")
        return True


class DirectErrorResponse(OpenIDMessage):
    c_param = OpenIDMessage.c_param.copy()
    c_param.update({
        "error": SINGLE_REQUIRED_STRING,
        "error_code": SINGLE_OPTIONAL_STRING,
        "contact": SINGLE_OPTIONAL_STRING,
        "reference": SINGLE_OPTIONAL_STRING,
    })
    is_request = False


class IndirectErrorResponse(OpenIDMessage):
    c_param = OpenIDMessage.c_param.copy()
    c_param.update({
        "error": SINGLE_REQUIRED_STRING,
        "contact": SINGLE_OPTIONAL_STRING,
        "reference": SINGLE_OPTIONAL_STRING,
    })
    message_mode = "error"
    direct = False
    is_request = False
