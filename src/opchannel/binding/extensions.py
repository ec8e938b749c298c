import logging
from typing import Dict
from typing import Optional

from opchannel.binding import BindingElement
from opchannel.binding import MessageProtection
from opchannel.exception import ExtensionMalformed
from opchannel.exception import MalformedMessage
from opchannel.extension import ExtensionRegistry
from opchannel.extension import RawExtension
from opchannel.message import OpenIDMessage
from opchannel.security import ProviderSecuritySettings

logger = logging.getLogger(__name__)

# Aliases an extension may not use. From section 12 of OpenID Authentication 2.0
RESERVED_ALIASES = [
    "assoc_handle", "assoc_type", "claimed_id", "contact", "delegate", "dh_consumer_public",
    "dh_gen", "dh_modulus", "error", "identity", "invalidate_handle", "mode", "ns",
    "op_endpoint", "openid", "realm", "reference", "response_nonce", "return_to", "server",
    "session_type", "sig", "signed", "trust_root"]


class ExtensionsBindingElement(BindingElement):
    """Moves extensions between their flattened wire form and extension objects."""
    name = "extensions"
    protection = MessageProtection.NONE

    def __init__(self,
                 extension_registry: ExtensionRegistry,
                 security_settings: ProviderSecuritySettings):
        if extension_registry is None:
            raise ValueError("An extension registry is required")
        if security_settings is None:
            raise ValueError("Security settings are required")
        self.extension_registry = extension_registry
        self.security_settings = security_settings

    @staticmethod
    def declared_aliases(message: OpenIDMessage) -> Dict[str, str]:
        aliases = {}
        for key, type_uri in message.items():
            if not key.startswith("ns."):
                continue
            alias = key[3:]
            if not alias or "." in alias or alias in RESERVED_ALIASES:
                raise MalformedMessage(f"Invalid extension alias: {alias!r}")
            if type_uri in aliases.values():
                raise MalformedMessage(f"Extension {type_uri} declared more than once")
            aliases[alias] = type_uri
        return aliases

    def process(self, message: OpenIDMessage) -> Optional[MessageProtection]:
        aliases = self.declared_aliases(message)
        if not aliases:
            return None

        signed = None
        if "sig" in message and not self.security_settings.allow_unsigned_extensions:
            signed = set(message.signed_list())

        for alias, type_uri in aliases.items():
            if signed is not None and f"ns.{alias}" not in signed:
                logger.warning(f"Ignoring unsigned extension {type_uri}")
                continue

            _prefix = f"{alias}."
            params = {}
            for key, val in message.items():
                if not key.startswith(_prefix):
                    continue
                if signed is not None and key not in signed:
                    logger.debug(f"Ignoring unsigned extension parameter {key}")
                    continue
                params[key[len(_prefix):]] = val

            try:
                ext = self.extension_registry.parse(type_uri, params, message.is_request)
            except ExtensionMalformed as err:
                if not self.security_settings.allow_unknown_extensions:
                    raise
                logger.warning(f"Treating malformed extension as unknown: {err}")
                ext = RawExtension(type_uri, params, message.is_request)

            message.extensions.append(ext)

        return self.protection

    def _pick_alias(self, type_uri: str, used: set) -> str:
        _alias = self.extension_registry.preferred_alias(type_uri)
        if _alias and _alias not in used:
            return _alias

        n = 1
        while f"ext{n}" in used:
            n += 1
        return f"ext{n}"

    def prepare(self, message: OpenIDMessage) -> Optional[MessageProtection]:
        if not message.extensions:
            return None

        declared = self.declared_aliases(message)
        used = set(declared.keys())
        used_uris = set(declared.values())
        signable = []
        for ext in message.extensions:
            type_uri, params, signable_names = self.extension_registry.serialize(ext)
            if type_uri in used_uris:
                raise MalformedMessage(f"Extension {type_uri} attached more than once")

            alias = self._pick_alias(type_uri, used)
            used.add(alias)
            used_uris.add(type_uri)

            message[f"ns.{alias}"] = type_uri
            signable.append(f"ns.{alias}")
            for key in sorted(params.keys()):
                message[f"{alias}.{key}"] = params[key]
                if key in signable_names:
                    signable.append(f"{alias}.{key}")

        message.extension_signable = signable
        return self.protection
