import pytest

from opchannel.exception import MalformedMessage
from opchannel.kvform import dict_to_kv
from opchannel.kvform import kv_to_dict
from opchannel.kvform import kv_to_seq
from opchannel.kvform import seq_to_kv
from opchannel.nonce import make_nonce
from opchannel.nonce import split_nonce
from opchannel.nonce import timestamp_to_str
from tests.utils import NOW
from tests.utils import seeded_rng


def test_seq_to_kv_keeps_order():
    _kv = seq_to_kv([("mode", "id_res"), ("claimed_id", "https://example.com/")])
    assert _kv == "mode:id_res\nclaimed_id:https://example.com/\n"


def test_dict_to_kv_sorted():
    assert dict_to_kv({"b": "2", "a": "1"}) == "a:1\nb:2\n"


def test_kv_value_with_colon():
    _kv = "return_to:https://rp.example.com:8080/\nns:x\n"
    assert kv_to_dict(_kv) == {"return_to": "https://rp.example.com:8080/", "ns": "x"}


@pytest.mark.parametrize("pair", [("a:b", "c"), ("a", "b\nc"), ("a\n", "b"), (" a", "b")])
def test_seq_to_kv_bad_pair(pair):
    with pytest.raises(MalformedMessage):
        seq_to_kv([pair])


def test_kv_to_seq_errors():
    with pytest.raises(MalformedMessage):
        kv_to_seq("a:b")

    with pytest.raises(MalformedMessage):
        kv_to_seq("ab\n")

    with pytest.raises(MalformedMessage):
        kv_to_dict("a:b\na:c\n")


def test_kv_to_seq_empty():
    assert kv_to_seq("") == []


def test_make_nonce():
    _nonce = make_nonce(NOW, seeded_rng())
    assert _nonce.startswith("2023-11-14T22:13:20Z")
    timestamp, tail = split_nonce(_nonce)
    assert timestamp == NOW
    assert len(tail) >= 6


def test_make_nonce_deterministic():
    assert make_nonce(NOW, seeded_rng(1)) == make_nonce(NOW, seeded_rng(1))
    assert make_nonce(NOW, seeded_rng(1)) != make_nonce(NOW, seeded_rng(2))


def test_timestamp_to_str():
    assert timestamp_to_str(0) == "1970-01-01T00:00:00Z"


@pytest.mark.parametrize("nonce", [
    "",
    "2023-11-14T22:13:20Z",
    "2023-11-14T22:13:20Zabc",
    "2023-11-14 22:13:20Zabcdefgh",
    "yesterdayabcdefgh",
    "2023-11-14T22:13:20Zabc defgh",
])
def test_split_nonce_malformed(nonce):
    with pytest.raises(MalformedMessage):
        split_nonce(nonce)
