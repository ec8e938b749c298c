import logging
from typing import Type

from idpyoidc.exception import MessageException
from idpyoidc.exception import MissingRequiredAttribute

from opchannel.exception import MalformedMessage
from opchannel.exception import MissingRequiredField
from opchannel.exception import UnrecognisedMessage
from opchannel.message import AssociateRequest
from opchannel.message import AssociateSuccessResponse
from opchannel.message import AssociateUnsuccessfulResponse
from opchannel.message import CheckAuthenticationRequest
from opchannel.message import CheckAuthenticationResponse
from opchannel.message import CheckIdImmediateRequest
from opchannel.message import CheckIdRequest
from opchannel.message import DirectErrorResponse
from opchannel.message import IndirectErrorResponse
from opchannel.message import NegativeAssertion
from opchannel.message import OPENID2_NS
from opchannel.message import OpenIDMessage
from opchannel.message import PositiveAssertion
from opchannel.message import SetupNeededAssertion

logger = logging.getLogger(__name__)

MODE2CLASS = {
    "associate": AssociateRequest,
    "checkid_setup": CheckIdRequest,
    "checkid_immediate": CheckIdImmediateRequest,
    "check_authentication": CheckAuthenticationRequest,
    "id_res": PositiveAssertion,
    "cancel": NegativeAssertion,
    "setup_needed": SetupNeededAssertion,
    "error": IndirectErrorResponse,
}


class MessageFactory(object):

    def classify(self, args: dict) -> Type[OpenIDMessage]:
        raise NotImplementedError()

    def create(self, args: dict) -> OpenIDMessage:
        """
        Build and verify a typed message from a parameter bag where the
        'openid.' prefix has been removed from the keys.
        """
        _cls = self.classify(args)
        try:
            message = _cls(**args)
            message.verify()
        except MissingRequiredAttribute as err:
            raise MissingRequiredField(f"{_cls.__name__}: missing {err}")
        except (MessageException, ValueError) as err:
            raise MalformedMessage(f"{_cls.__name__}: {err}")

        logger.debug(f"Message classified as {_cls.__name__}")
        return message


class OpenIDMessageFactory(MessageFactory):
    """Knows about the OpenID 2.0 messages that involve a Provider."""

    def __init__(self, mode2class=None):
        self.mode2class = dict(mode2class or MODE2CLASS)

    def classify(self, args: dict) -> Type[OpenIDMessage]:
        if args.get("ns") != OPENID2_NS:
            raise UnrecognisedMessage(f"Not an OpenID 2.0 message: ns={args.get('ns')!r}")

        mode = args.get("mode")
        if mode is None:
            # Direct responses do not carry openid.mode
            if "is_valid" in args:
                return CheckAuthenticationResponse
            if "assoc_type" in args and "assoc_handle" in args:
                return AssociateSuccessResponse
            if args.get("error_code") == "unsupported-type":
                return AssociateUnsuccessfulResponse
            if "error" in args:
                return DirectErrorResponse
            raise UnrecognisedMessage("Message without mode")

        if mode == "associate" and "assoc_type" not in args:
            raise MissingRequiredField("associate request without assoc_type")

        try:
            return self.mode2class[mode]
        except KeyError:
            raise UnrecognisedMessage(f"Unknown mode: {mode}")
