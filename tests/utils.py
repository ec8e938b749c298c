import random

from opchannel.association_store import MemoryAssociationStore
from opchannel.binding import BindingElement
from opchannel.channel import ProviderChannel
from opchannel.extension import ExtensionRegistry
from opchannel.extension.pape import PapeExtensionFactory
from opchannel.extension.sreg import SRegExtensionFactory
from opchannel.message import OPENID2_NS
from opchannel.message import OPENID_PREFIX
from opchannel.nonce_store import MemoryNonceStore
from opchannel.nonce_store import NonceStore
from opchannel.security import ProviderSecuritySettings

NOW = 1700000000

OP_ENDPOINT = "https://op.example.com/openid"
RETURN_TO = "https://rp.example.com/return"
REALM = "https://rp.example.com/"
CLAIMED_ID = "https://op.example.com/user/diana"


class Clock(object):
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def seeded_rng(seed=0):
    return random.Random(seed).randbytes


class Recorder(BindingElement):
    """Notes down when it is visited."""

    def __init__(self, name, log):
        self.name = name
        self.log = log

    def process(self, message):
        self.log.append(self.name)
        return None

    def prepare(self, message):
        self.log.append(self.name)
        return None


def make_registry():
    return ExtensionRegistry([SRegExtensionFactory(), PapeExtensionFactory()])


def make_channel(clock=None, rng=None, **security):
    clock = clock or Clock()
    rng = rng or seeded_rng()
    return ProviderChannel(MemoryAssociationStore(rng=rng, clock=clock),
                           MemoryNonceStore(clock=clock),
                           ProviderSecuritySettings(**security),
                           extension_registry=make_registry(),
                           clock=clock, rng=rng)


def assertion_args(nonce, handle, **kwargs):
    args = {
        "ns": OPENID2_NS,
        "mode": "id_res",
        "op_endpoint": OP_ENDPOINT,
        "return_to": RETURN_TO,
        "response_nonce": nonce,
        "assoc_handle": handle,
        "claimed_id": CLAIMED_ID,
        "identity": CLAIMED_ID,
    }
    args.update(kwargs)
    return args


def signed_check_auth(args, assoc, signed=None):
    """
    Sign an id_res parameter set the way a Provider would and turn it into
    the check_authentication request a Relying Party would send.
    """
    _args = dict(args)
    if signed is None:
        signed = [k for k in _args.keys() if k not in ("sig", "signed")]
    _args["signed"] = ",".join(signed)
    _args["sig"] = assoc.sign([(k, _args[k]) for k in signed])
    raw = {f"{OPENID_PREFIX}{k}": v for k, v in _args.items()}
    raw[f"{OPENID_PREFIX}mode"] = "check_authentication"
    return raw


def check_auth_from_assertion(params):
    raw = dict(params)
    raw[f"{OPENID_PREFIX}mode"] = "check_authentication"
    return raw


class UnreachableNonceStore(NonceStore):
    """A nonce store whose database has gone away."""

    def check_and_insert(self, context, nonce, expires_at):
        raise ConnectionError("nonce db down")


class UnreachableAssociationStore(MemoryAssociationStore):
    """Stateless handles still work, anything needing the database does not."""

    def mint_shared(self, assoc_type, lifetime, private=False):
        raise ConnectionError("association db down")

    def lookup_shared(self, handle):
        raise ConnectionError("association db down")
