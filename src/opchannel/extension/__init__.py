import logging
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple

from idpyoidc.exception import MessageException
from idpyoidc.message import Message
from idpyoidc.server.util import execute

from opchannel.exception import ExtensionMalformed

logger = logging.getLogger(__name__)


class Extension(Message):
    """An OpenID extension request or response, without alias prefixes on its keys."""
    type_uri = ""

    def verify(self, **kwargs):
        super(Extension, self).verify(**kwargs)
        _extra = self.extra()
        if _extra:
            raise ValueError(f"Unknown parameters: {', '.join(sorted(_extra.keys()))}")
        return True


class RawExtension(object):
    """An extension nobody has parsed. Passed on as is."""

    def __init__(self, type_uri: str, params: Optional[dict] = None, is_request: bool = True):
        self.type_uri = type_uri
        self.params = params or {}
        self.is_request = is_request

    def to_dict(self):
        return dict(self.params)

    def __eq__(self, other):
        return (isinstance(other, RawExtension) and self.type_uri == other.type_uri and
                self.params == other.params)

    def __repr__(self):
        return f"RawExtension({self.type_uri!r}, {self.params!r})"


class ExtensionFactory(object):
    type_uri = ""
    preferred_alias = ""
    request_class = Extension
    response_class = Extension

    def parse(self, params: dict, is_request: bool) -> Extension:
        _cls = self.request_class if is_request else self.response_class
        ext = _cls(**params)
        ext.verify()
        return ext

    def serialize(self, ext) -> Dict[str, str]:
        return {k: str(v) for k, v in ext.to_dict().items()}

    def is_signable_field(self, name: str) -> bool:
        return True


class ExtensionRegistry(object):
    """
    Maps extension type URIs to the factories that know how to parse and
    serialize them. Built once, never changed afterwards.
    """

    def __init__(self, factories: Optional[List[ExtensionFactory]] = None):
        _db = {}
        for factory in factories or []:
            if not factory.type_uri:
                raise ValueError(f"{factory.__class__.__name__} has no type URI")
            if factory.type_uri in _db:
                raise ValueError(f"Two factories for {factory.type_uri}")
            _db[factory.type_uri] = factory
        self._db = _db

    @classmethod
    def from_config(cls, specs: List[dict]):
        return cls([execute(spec) for spec in specs])

    def __contains__(self, type_uri):
        return type_uri in self._db

    def type_uris(self):
        return list(self._db.keys())

    def preferred_alias(self, type_uri: str) -> str:
        try:
            return self._db[type_uri].preferred_alias
        except KeyError:
            return ""

    def parse(self, type_uri: str, params: dict, is_request: bool = True):
        try:
            factory = self._db[type_uri]
        except KeyError:
            logger.debug(f"Unknown extension: {type_uri}")
            return RawExtension(type_uri, params, is_request)

        try:
            return factory.parse(params, is_request)
        except (MessageException, ValueError) as err:
            raise ExtensionMalformed(f"{type_uri}: {err}", type_uri=type_uri)

    def serialize(self, ext) -> Tuple[str, Dict[str, str], List[str]]:
        """
        :return: tuple with type URI, flattened parameters and the names of
            the parameters that may be signed
        """
        if isinstance(ext, RawExtension):
            return ext.type_uri, ext.to_dict(), list(ext.params.keys())

        try:
            factory = self._db[ext.type_uri]
        except KeyError:
            raise ValueError(f"No factory registered for {ext.type_uri}")

        params = factory.serialize(ext)
        signable = [k for k in params.keys() if factory.is_signable_field(k)]
        return ext.type_uri, params, signable
