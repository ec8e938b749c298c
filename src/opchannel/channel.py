import copy
import logging
import os
from typing import Callable
from typing import List
from typing import Optional

from cryptojwt.jwt import utc_time_sans_frac
from idpyoidc.exception import MessageException

from opchannel.association_store import AssociationStore
from opchannel.binding import BindingElement
from opchannel.binding import MessageProtection
from opchannel.binding.expiration import ExpirationBindingElement
from opchannel.binding.extensions import ExtensionsBindingElement
from opchannel.binding.replay import ReplayProtectionBindingElement
from opchannel.binding.signing import ProviderSigningBindingElement
from opchannel.exception import ChannelCancelled
from opchannel.exception import ChannelError
from opchannel.exception import ProtocolError
from opchannel.extension import ExtensionRegistry
from opchannel.factory import MessageFactory
from opchannel.factory import OpenIDMessageFactory
from opchannel.message import OpenIDMessage
from opchannel.nonce_store import NonceStore
from opchannel.security import ProviderSecuritySettings
from opchannel.transport import encode_response
from opchannel.transport import openid_args

logger = logging.getLogger(__name__)


class Channel(object):
    """
    Drives messages through an ordered pipeline of binding elements.
    Incoming messages meet the elements in the order given, outgoing ones
    in the reverse order. The pipeline is fixed once the channel is built.
    """

    def __init__(self, message_factory: MessageFactory, binding_elements: List[BindingElement]):
        if message_factory is None:
            raise ValueError("A message factory is required")
        if not binding_elements:
            raise ValueError("At least one binding element is required")

        _names = set()
        _protections = set()
        for element in binding_elements:
            if not isinstance(element, BindingElement):
                raise TypeError(f"Not a binding element: {element!r}")
            if element.name in _names:
                raise ValueError(f"Binding element '{element.name}' given more than once")
            _names.add(element.name)
            if element.protection != MessageProtection.NONE:
                if element.protection in _protections:
                    raise ValueError(f"More than one element gives {element.protection!r}")
                _protections.add(element.protection)

        self._message_factory = message_factory
        self._binding_elements = tuple(binding_elements)

    @property
    def binding_elements(self):
        return self._binding_elements

    @property
    def message_factory(self):
        return self._message_factory

    def _apply(self, element: BindingElement, step: str, message: OpenIDMessage, cancel=None):
        if cancel is not None and cancel.is_set():
            raise ChannelCancelled(f"Cancelled before {element.name}", element=element.name)

        try:
            result = getattr(element, step)(message)
        except ChannelError as err:
            if not err.element:
                err.element = element.name
            logger.warning(f"{element.name} rejected {message.__class__.__name__} in {step}: "
                           f"{err}")
            raise

        if result is None:
            logger.debug(f"{element.name}.{step}: not applicable")
            return MessageProtection.NONE

        logger.debug(f"{element.name}.{step}: applied {result!r}")
        return result

    def process_incoming(self, raw: dict, method: Optional[str] = "POST",
                         url: Optional[str] = "", cancel=None) -> OpenIDMessage:
        """
        :param raw: The parameters as received, with 'openid.' prefixes
        :param method: HTTP method the message arrived with
        :param url: The URL the message was sent to
        :param cancel: Something with an is_set method, a threading.Event for instance
        :return: A verified message
        """
        message = self._message_factory.create(openid_args(raw))
        logger.debug(f"Incoming {message.__class__.__name__} via {method} {url}")

        applied = MessageProtection.NONE
        for element in self._binding_elements:
            applied |= self._apply(element, "process", message, cancel)

        message.protections = applied
        return message

    def prepare_response(self, message: OpenIDMessage, cancel=None) -> dict:
        """
        Stamp, sign and serialize a message. The message given is not changed,
        a sealed copy is returned under the key 'message'.

        :return: dictionary with the HTTP disposition of the message
        """
        _msg = copy.deepcopy(message)
        applied = MessageProtection.NONE
        for element in reversed(self._binding_elements):
            applied |= self._apply(element, "prepare", _msg, cancel)

        for element in self._binding_elements:
            applied |= self._apply(element, "seal", _msg, cancel)

        if _msg.requires_signature and not applied & MessageProtection.TAMPER_PROTECTION:
            raise ProtocolError(f"{_msg.__class__.__name__} must be signed but nothing signed it")

        try:
            _msg.verify()
        except (MessageException, ValueError) as err:
            raise ProtocolError(f"Outgoing {_msg.__class__.__name__} is not valid: {err}")

        _msg.protections = applied
        _msg.seal()
        res = encode_response(_msg)
        res["message"] = _msg
        return res


class ProviderChannel(Channel):
    """The channel an OpenID Provider uses to talk to Relying Parties."""

    def __init__(self,
                 association_store: AssociationStore,
                 nonce_store: NonceStore,
                 security_settings: ProviderSecuritySettings,
                 extension_registry: Optional[ExtensionRegistry] = None,
                 message_factory: Optional[MessageFactory] = None,
                 clock: Optional[Callable[[], int]] = None,
                 rng: Optional[Callable[[int], bytes]] = None):
        if association_store is None:
            raise ValueError("An association store is required")
        if nonce_store is None:
            raise ValueError("A nonce store is required")
        if security_settings is None:
            raise ValueError("Security settings are required")

        self.association_store = association_store
        self.nonce_store = nonce_store
        self.security_settings = security_settings
        self.extension_registry = extension_registry or ExtensionRegistry()
        self.clock = clock or utc_time_sans_frac
        self.rng = rng or os.urandom

        Channel.__init__(self, message_factory or OpenIDMessageFactory(),
                         self.initialize_binding_elements())

    def initialize_binding_elements(self) -> List[BindingElement]:
        return [
            ExtensionsBindingElement(self.extension_registry, self.security_settings),
            ReplayProtectionBindingElement(self.nonce_store, self.security_settings,
                                           clock=self.clock, rng=self.rng),
            ExpirationBindingElement(self.security_settings, clock=self.clock, rng=self.rng),
            ProviderSigningBindingElement(self.association_store, self.security_settings,
                                          clock=self.clock),
        ]
