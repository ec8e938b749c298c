import logging
from typing import List
from typing import Optional

from opchannel.binding import store_call
from opchannel.channel import ProviderChannel
from opchannel.dh import SESSION_TYPES
from opchannel.exception import AssociationStoreError
from opchannel.exception import ChannelError
from opchannel.exception import DisallowedAlgorithm
from opchannel.exception import InsufficientSignatureCoverage
from opchannel.exception import InvalidAssociation
from opchannel.exception import InvalidSignature
from opchannel.exception import MalformedMessage
from opchannel.exception import MessageExpired
from opchannel.exception import ProtocolError
from opchannel.exception import ReplayDetected
from opchannel.message import AssociateRequest
from opchannel.message import AssociateSuccessResponse
from opchannel.message import AssociateUnsuccessfulResponse
from opchannel.message import CheckAuthenticationRequest
from opchannel.message import CheckAuthenticationResponse
from opchannel.message import CheckIdRequest
from opchannel.message import DirectErrorResponse
from opchannel.message import IDENTIFIER_SELECT
from opchannel.message import IndirectErrorResponse
from opchannel.message import NegativeAssertion
from opchannel.message import OPENID_PREFIX
from opchannel.message import PositiveAssertion
from opchannel.message import SetupNeededAssertion
from opchannel.transport import parse_request

logger = logging.getLogger(__name__)

# Failures that must not tell the Relying Party more than that it failed.
AUTHENTICATION_FAILURES = (InvalidAssociation, InvalidSignature, InsufficientSignatureCoverage,
                           DisallowedAlgorithm, ReplayDetected, MessageExpired)

GENERIC_FAILURE = "Authentication failed"


class Provider(object):
    """
    The application layer on top of a ProviderChannel. Answers associate and
    check_authentication requests itself and helps build assertions for
    checkid requests.
    """

    def __init__(self, op_endpoint: str, channel: ProviderChannel,
                 contact: Optional[str] = "", reference: Optional[str] = ""):
        if not op_endpoint:
            raise ValueError("op_endpoint is required")
        if channel is None:
            raise ValueError("A channel is required")
        self.op_endpoint = op_endpoint
        self.channel = channel
        self.contact = contact
        self.reference = reference

    @property
    def security_settings(self):
        return self.channel.security_settings

    @property
    def association_store(self):
        return self.channel.association_store

    def decode_request(self, method: str, url: str, body: Optional[str] = ""):
        """Parse and verify an incoming request."""
        raw = parse_request(method, url, body)
        return self.channel.process_incoming(raw, method=method, url=url)

    def handle_direct_request(self, raw: dict, method: Optional[str] = "POST",
                              url: Optional[str] = "") -> dict:
        """
        Deals with requests the Provider answers on its own.
        Returns the HTTP disposition of the response.
        """
        try:
            if raw.get(f"{OPENID_PREFIX}mode") == "check_authentication":
                response = self.check_authentication(raw, method, url)
            else:
                request = self.channel.process_incoming(raw, method=method, url=url)
                if not isinstance(request, AssociateRequest):
                    raise ProtocolError(f"{request['mode']} is not a direct request")
                response = self.associate(request)
        except ChannelError as err:
            return self.error_response(err, raw)

        return self.channel.prepare_response(response)

    def _error_args(self, text: str) -> dict:
        _kwargs = {"error": text}
        if self.contact:
            _kwargs["contact"] = self.contact
        if self.reference:
            _kwargs["reference"] = self.reference
        return _kwargs

    def _unsupported(self, message: str) -> AssociateUnsuccessfulResponse:
        _settings = self.security_settings
        _assoc_type = _settings.private_association_type
        _session_type = "no-encryption"
        for name, cls in SESSION_TYPES.items():
            if _assoc_type in cls.allowed_assoc_types and _settings.is_allowed_session_type(name):
                _session_type = name
                if name != "no-encryption":
                    break
        return AssociateUnsuccessfulResponse(error=message, assoc_type=_assoc_type,
                                             session_type=_session_type)

    def associate(self, request: AssociateRequest):
        _settings = self.security_settings
        assoc_type = request["assoc_type"]
        session_type = request["session_type"]

        if not _settings.is_allowed_association_type(assoc_type):
            return self._unsupported(f"Association type {assoc_type} not supported")
        if not _settings.is_allowed_session_type(session_type):
            return self._unsupported(f"Session type {session_type} not supported")

        _session_class = SESSION_TYPES[session_type]
        if assoc_type not in _session_class.allowed_assoc_types:
            return self._unsupported(f"{session_type} can not be used with {assoc_type}")

        try:
            session = _session_class.from_request(request, rng=self.channel.rng)
        except MalformedMessage as err:
            return DirectErrorResponse(**self._error_args(str(err)))

        assoc = store_call(AssociationStoreError, self.association_store.mint_shared, assoc_type,
                           _settings.association_lifetime)
        logger.info(f"New {assoc_type} association using {session_type}")
        response = AssociateSuccessResponse(assoc_handle=assoc["handle"],
                                            session_type=session_type,
                                            assoc_type=assoc_type,
                                            expires_in=str(assoc["lifetime"]))
        for key, val in session.answer(assoc.secret_bytes).items():
            response[key] = val
        return response

    def check_authentication(self, raw: dict, method: Optional[str] = "POST",
                             url: Optional[str] = "") -> CheckAuthenticationResponse:
        response = CheckAuthenticationResponse(is_valid="false")
        try:
            request = self.channel.process_incoming(raw, method=method, url=url)
        except AUTHENTICATION_FAILURES as err:
            logger.info(f"check_authentication failed: {err.kind}")
            return response

        if not isinstance(request, CheckAuthenticationRequest):
            raise ProtocolError("Not a check_authentication request")

        response["is_valid"] = "true"
        _invalidate = request.get("invalidate_handle")
        if _invalidate and store_call(AssociationStoreError, self.association_store.lookup_shared,
                                      _invalidate) is None:
            # Tell the RP the handle it used is no longer any good
            response["invalidate_handle"] = _invalidate
        return response

    def positive_assertion(self, request: CheckIdRequest,
                           claimed_id: Optional[str] = None,
                           identity: Optional[str] = None,
                           extensions: Optional[List] = None) -> dict:
        if "return_to" not in request:
            raise ProtocolError("Can not send an assertion without return_to")

        _identity = request.get("identity")
        _claimed_id = request.get("claimed_id")
        if _identity == IDENTIFIER_SELECT or _identity is None:
            _identity = identity
            _claimed_id = claimed_id or identity
        elif identity and identity != _identity:
            raise ProtocolError("Asserting another identifier than the one asked about")

        if not _identity:
            raise ProtocolError("A positive assertion must name an identifier")

        _args = {"op_endpoint": self.op_endpoint, "return_to": request["return_to"],
                 "identity": _identity, "claimed_id": _claimed_id or _identity}
        if "assoc_handle" in request:
            _args["assoc_handle"] = request["assoc_handle"]

        assertion = PositiveAssertion(**_args)
        assertion.extensions = list(extensions or [])
        return self.channel.prepare_response(assertion)

    def negative_assertion(self, request: CheckIdRequest) -> dict:
        if "return_to" not in request:
            raise ProtocolError("Can not send an assertion without return_to")
        if request.immediate:
            response = SetupNeededAssertion(return_to=request["return_to"])
        else:
            response = NegativeAssertion(return_to=request["return_to"])
        response.recipient = request["return_to"]
        return self.channel.prepare_response(response)

    def error_response(self, err: ChannelError, raw: dict) -> dict:
        """
        Builds a protocol error response. Indirect requests get a redirect
        back to the Relying Party when there is somewhere to send it.
        """
        if isinstance(err, AUTHENTICATION_FAILURES):
            _text = GENERIC_FAILURE
        else:
            _text = str(err) or err.kind

        _kwargs = self._error_args(_text)
        _mode = raw.get(f"{OPENID_PREFIX}mode", "")
        _return_to = raw.get(f"{OPENID_PREFIX}return_to")
        if _mode.startswith("checkid_") and _return_to:
            response = IndirectErrorResponse(**_kwargs)
            response.recipient = _return_to
        else:
            response = DirectErrorResponse(**_kwargs)

        logger.info(f"Responding with error: {err.kind} from '{err.element}'")
        return self.channel.prepare_response(response)
