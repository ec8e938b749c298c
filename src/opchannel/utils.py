import logging
from typing import Callable
from typing import List
from typing import Optional
from typing import Union

from cryptojwt.jwt import utc_time_sans_frac
from idpyoidc.server.util import execute

from opchannel.channel import ProviderChannel
from opchannel.configure import ProviderConfiguration
from opchannel.defaults import DEFAULT_ASSOCIATION_STORE
from opchannel.defaults import DEFAULT_EXTENSIONS
from opchannel.defaults import DEFAULT_NONCE_STORE
from opchannel.exception import ConfigurationError
from opchannel.extension import ExtensionRegistry
from opchannel.provider import Provider
from opchannel.security import ProviderSecuritySettings

logger = logging.getLogger(__name__)


def make_provider_channel(security: Optional[dict] = None,
                          association_store: Optional[dict] = None,
                          nonce_store: Optional[dict] = None,
                          extensions: Optional[List[dict]] = None,
                          clock: Optional[Callable[[], int]] = None,
                          rng: Optional[Callable[[int], bytes]] = None) -> ProviderChannel:
    """
    Build a channel from class and kwargs descriptions.

    :param security: Keyword arguments to ProviderSecuritySettings
    :param association_store: Class and kwargs of the association store
    :param nonce_store: Class and kwargs of the nonce store
    :param extensions: Class and kwargs of each extension factory
    """
    _clock = clock or utc_time_sans_frac
    try:
        _settings = ProviderSecuritySettings(**(security or {}))
    except (TypeError, ValueError) as err:
        raise ConfigurationError(f"Bad security settings: {err}")

    _assoc_kwargs = {"clock": _clock}
    if rng:
        _assoc_kwargs["rng"] = rng
    _assoc_store = execute(association_store or DEFAULT_ASSOCIATION_STORE, **_assoc_kwargs)
    _nonce_store = execute(nonce_store or DEFAULT_NONCE_STORE, clock=_clock)

    if extensions is None:
        extensions = DEFAULT_EXTENSIONS
    _registry = ExtensionRegistry.from_config(extensions)
    logger.debug(f"Extensions supported: {_registry.type_uris()}")

    return ProviderChannel(_assoc_store, _nonce_store, _settings,
                           extension_registry=_registry, clock=_clock, rng=rng)


def make_provider(conf: Union[dict, ProviderConfiguration],
                  clock: Optional[Callable[[], int]] = None,
                  rng: Optional[Callable[[int], bytes]] = None) -> Provider:
    if not isinstance(conf, ProviderConfiguration):
        conf = ProviderConfiguration(conf)

    channel = make_provider_channel(security=conf.security,
                                    association_store=conf.association_store,
                                    nonce_store=conf.nonce_store,
                                    extensions=conf.extensions,
                                    clock=clock, rng=rng)
    return Provider(conf.op_endpoint, channel, contact=conf.contact,
                    reference=conf.reference)
