import pytest

from opchannel.binding.extensions import ExtensionsBindingElement
from opchannel.exception import ExtensionMalformed
from opchannel.exception import MalformedMessage
from opchannel.extension import ExtensionRegistry
from opchannel.extension import RawExtension
from opchannel.extension.pape import AUTH_MULTI_FACTOR
from opchannel.extension.pape import AUTH_NONE
from opchannel.extension.pape import PAPE_URI
from opchannel.extension.pape import PapeResponse
from opchannel.extension.sreg import SREG_URI
from opchannel.extension.sreg import SRegExtensionFactory
from opchannel.extension.sreg import SRegRequest
from opchannel.extension.sreg import SRegResponse
from opchannel.message import CheckIdRequest
from opchannel.message import PositiveAssertion
from opchannel.security import ProviderSecuritySettings
from tests.utils import OP_ENDPOINT
from tests.utils import RETURN_TO
from tests.utils import make_registry

UNKNOWN_URI = "http://example.com/ext/unknown"


def test_registry_from_config():
    registry = ExtensionRegistry.from_config([
        {"class": "opchannel.extension.sreg.SRegExtensionFactory", "kwargs": {}}
    ])
    assert SREG_URI in registry
    assert PAPE_URI not in registry
    assert registry.preferred_alias(SREG_URI) == "sreg"
    assert registry.preferred_alias(PAPE_URI) == ""


def test_registry_duplicate_factory():
    with pytest.raises(ValueError):
        ExtensionRegistry([SRegExtensionFactory(), SRegExtensionFactory()])


def test_registry_parse():
    registry = make_registry()
    ext = registry.parse(SREG_URI, {"required": "email", "optional": "nickname,dob"})
    assert isinstance(ext, SRegRequest)
    assert ext.required == ["email"]
    assert ext.optional == ["nickname", "dob"]

    ext = registry.parse(UNKNOWN_URI, {"foo": "bar"})
    assert ext == RawExtension(UNKNOWN_URI, {"foo": "bar"})

    with pytest.raises(ExtensionMalformed) as err:
        registry.parse(SREG_URI, {"required": "shoe_size"})
    assert err.value.type_uri == SREG_URI


def test_sreg_response():
    request = SRegRequest(required="email", optional="nickname")
    response = SRegResponse.from_request(request, {"email": "diana@example.com",
                                                   "nickname": "diana",
                                                   "fullname": "Diana Prince"})
    assert set(response.keys()) == {"email", "nickname"}

    with pytest.raises(ValueError):
        SRegResponse(gender="X").verify()
    with pytest.raises(ValueError):
        SRegResponse(dob="14 nov 1980").verify()
    assert SRegResponse(dob="1980-00-00").verify()


def test_pape_response():
    assert PapeResponse(auth_policies=AUTH_MULTI_FACTOR,
                        auth_time="2023-11-14T22:13:20Z").verify()
    with pytest.raises(ValueError):
        PapeResponse(auth_policies=f"{AUTH_NONE} {AUTH_MULTI_FACTOR}").verify()
    with pytest.raises(ValueError):
        PapeResponse(auth_policies=AUTH_NONE, auth_time="yesterday").verify()


class TestExtensionsBindingElement():
    @pytest.fixture(autouse=True)
    def create_element(self):
        self.element = ExtensionsBindingElement(make_registry(), ProviderSecuritySettings())

    def test_process(self):
        msg = CheckIdRequest(return_to=RETURN_TO, **{
            "ns.sreg": SREG_URI, "sreg.required": "email",
            "ns.ext1": UNKNOWN_URI, "ext1.foo": "bar"})
        self.element.process(msg)
        assert len(msg.extensions) == 2
        _types = {type(e) for e in msg.extensions}
        assert _types == {SRegRequest, RawExtension}

    def test_process_without_extensions(self):
        msg = CheckIdRequest(return_to=RETURN_TO)
        assert self.element.process(msg) is None
        assert msg.extensions == []

    def test_reserved_alias(self):
        msg = CheckIdRequest(return_to=RETURN_TO, **{"ns.mode": SREG_URI})
        with pytest.raises(MalformedMessage):
            self.element.process(msg)

    def test_same_uri_twice(self):
        msg = CheckIdRequest(return_to=RETURN_TO, **{"ns.a": SREG_URI, "ns.b": SREG_URI})
        with pytest.raises(MalformedMessage):
            self.element.process(msg)

    def test_malformed_demoted(self):
        element = ExtensionsBindingElement(make_registry(),
                                           ProviderSecuritySettings(allow_unknown_extensions=True))
        msg = CheckIdRequest(return_to=RETURN_TO, **{"ns.sreg": SREG_URI,
                                                     "sreg.required": "shoe_size"})
        element.process(msg)
        assert msg.extensions == [RawExtension(SREG_URI, {"required": "shoe_size"})]

    def test_unsigned_extension_ignored(self):
        element = ExtensionsBindingElement(
            make_registry(), ProviderSecuritySettings(allow_unsigned_extensions=False))
        msg = PositiveAssertion(op_endpoint=OP_ENDPOINT, return_to=RETURN_TO, sig="abc",
                                signed="op_endpoint,return_to,ns.sreg,sreg.email",
                                **{"ns.sreg": SREG_URI, "sreg.email": "diana@example.com",
                                   "sreg.nickname": "diana", "ns.pape": PAPE_URI,
                                   "pape.auth_policies": AUTH_NONE})
        element.process(msg)
        assert len(msg.extensions) == 1
        assert set(msg.extensions[0].keys()) == {"email"}

    def test_prepare(self):
        msg = PositiveAssertion(op_endpoint=OP_ENDPOINT, return_to=RETURN_TO)
        msg.extensions = [SRegResponse(email="diana@example.com"),
                          RawExtension(UNKNOWN_URI, {"foo": "bar"}, is_request=False)]
        self.element.prepare(msg)
        assert msg["ns.sreg"] == SREG_URI
        assert msg["sreg.email"] == "diana@example.com"
        assert msg["ns.ext1"] == UNKNOWN_URI
        assert msg["ext1.foo"] == "bar"
        assert msg.extension_signable == ["ns.sreg", "sreg.email", "ns.ext1", "ext1.foo"]

    def test_prepare_alias_taken(self):
        msg = PositiveAssertion(op_endpoint=OP_ENDPOINT, return_to=RETURN_TO,
                                **{"ns.sreg": UNKNOWN_URI})
        msg.extensions = [SRegResponse(email="diana@example.com")]
        self.element.prepare(msg)
        assert msg["ns.ext1"] == SREG_URI
        assert msg["ext1.email"] == "diana@example.com"

    def test_prepare_twice_same_uri(self):
        msg = PositiveAssertion(op_endpoint=OP_ENDPOINT, return_to=RETURN_TO)
        msg.extensions = [SRegResponse(email="a@example.com"),
                          SRegResponse(email="b@example.com")]
        with pytest.raises(MalformedMessage):
            self.element.prepare(msg)
