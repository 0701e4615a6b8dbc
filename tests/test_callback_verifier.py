"""
Tests for OAuth callback verification — parsing, shop domain and HMAC.
"""

import hashlib
import hmac

import pytest

from connectors.callback import CallbackVerifier, canonical_message
from connectors.errors import ConnectorError, ErrorKind

from conftest import TEST_CLIENT_SECRET, TEST_SHOP, sign


def _params(**extra) -> dict:
    params = {
        "code": "auth-code-123",
        "shop": TEST_SHOP,
        "state": "nonce-abc",
        "timestamp": "1710000000",
    }
    params.update(extra)
    return params


def _kind(exc_info) -> ErrorKind:
    return exc_info.value.kind


class TestCanonicalMessage:
    def test_sorted_and_hmac_excluded(self):
        msg = canonical_message({"shop": "a", "hmac": "zz", "code": "c", "timestamp": "1"})
        assert msg == "code=c&shop=a&timestamp=1"

    def test_sorted_by_byte_value(self):
        # uppercase sorts before lowercase in byte order
        assert canonical_message({"b": "1", "B": "2", "a": "3"}) == "B=2&a=3&b=1"

    def test_values_not_reencoded(self):
        msg = canonical_message({"host": "YWRtaW4uc2hvcGlmeS5jb20vc3RvcmUvZm9v", "q": "a b&c"})
        assert msg == "host=YWRtaW4uc2hvcGlmeS5jb20vc3RvcmUvZm9v&q=a b&c"


class TestParse:
    @pytest.mark.parametrize("missing", ["code", "shop", "hmac"])
    def test_missing_required_parameter(self, missing):
        params = sign(_params())
        params.pop(missing)
        with pytest.raises(ConnectorError) as exc_info:
            CallbackVerifier(TEST_CLIENT_SECRET).verify(params)
        assert _kind(exc_info) is ErrorKind.MISSING_PARAMETER
        assert missing in str(exc_info.value)

    def test_empty_value_counts_as_missing(self):
        params = sign(_params(code=""))
        with pytest.raises(ConnectorError) as exc_info:
            CallbackVerifier(TEST_CLIENT_SECRET).verify(params)
        assert _kind(exc_info) is ErrorKind.MISSING_PARAMETER

    def test_non_string_values_rejected(self):
        params = sign(_params())
        params["timestamp"] = 1710000000
        with pytest.raises(ConnectorError) as exc_info:
            CallbackVerifier(TEST_CLIENT_SECRET).verify(params)
        assert _kind(exc_info) is ErrorKind.INVALID_FORMAT

    def test_extra_parameters_are_retained(self):
        params = sign(_params(host="abc"))
        callback = CallbackVerifier(TEST_CLIENT_SECRET).verify(params)
        assert callback.params["host"] == "abc"
        assert callback.state == "nonce-abc"


class TestShopDomain:
    @pytest.mark.parametrize(
        "shop",
        [
            "evil.com",
            "shop.myshopify.com.evil.com",
            "MY_STORE.myshopify.com",
            "My-Store.myshopify.com",
            "-store.myshopify.com",
            "store.myshopify.com/",
            "store.myshopify.com\n",
            "a.b.myshopify.com",
        ],
    )
    def test_lookalike_domains_rejected(self, shop):
        # signed correctly, so only the domain check can reject it
        params = sign(_params(shop=shop))
        with pytest.raises(ConnectorError) as exc_info:
            CallbackVerifier(TEST_CLIENT_SECRET).verify(params)
        assert _kind(exc_info) is ErrorKind.INVALID_FORMAT

    def test_domain_checked_before_hmac(self):
        params = _params(shop="evil.com", hmac="00")
        with pytest.raises(ConnectorError) as exc_info:
            CallbackVerifier(TEST_CLIENT_SECRET).verify(params)
        assert _kind(exc_info) is ErrorKind.INVALID_FORMAT


class TestHmac:
    def test_valid_signature(self):
        callback = CallbackVerifier(TEST_CLIENT_SECRET).verify(sign(_params()))
        assert callback.shop == TEST_SHOP
        assert callback.code == "auth-code-123"

    def test_matches_independent_computation(self):
        params = _params()
        message = "&".join(f"{k}={params[k]}" for k in sorted(params))
        params["hmac"] = hmac.new(TEST_CLIENT_SECRET.encode(), message.encode(), hashlib.sha256).hexdigest()
        CallbackVerifier(TEST_CLIENT_SECRET).verify(params)

    def test_every_single_bit_flip_fails(self):
        params = sign(_params())
        raw = bytes.fromhex(params["hmac"])
        verifier = CallbackVerifier(TEST_CLIENT_SECRET)
        for bit in range(len(raw) * 8):
            flipped = bytearray(raw)
            flipped[bit // 8] ^= 1 << (bit % 8)
            tampered = dict(params, hmac=flipped.hex())
            with pytest.raises(ConnectorError) as exc_info:
                verifier.verify(tampered)
            assert _kind(exc_info) is ErrorKind.HMAC_VERIFICATION_FAILED

    def test_tampered_param_fails(self):
        params = sign(_params())
        params["code"] = "different-code"
        with pytest.raises(ConnectorError) as exc_info:
            CallbackVerifier(TEST_CLIENT_SECRET).verify(params)
        assert _kind(exc_info) is ErrorKind.HMAC_VERIFICATION_FAILED

    def test_added_param_fails(self):
        params = sign(_params())
        params["extra"] = "1"
        with pytest.raises(ConnectorError):
            CallbackVerifier(TEST_CLIENT_SECRET).verify(params)

    def test_wrong_secret_fails(self):
        params = sign(_params(), secret="other-secret")
        with pytest.raises(ConnectorError) as exc_info:
            CallbackVerifier(TEST_CLIENT_SECRET).verify(params)
        assert _kind(exc_info) is ErrorKind.HMAC_VERIFICATION_FAILED

    @pytest.mark.parametrize("bad", ["not-hex", "abc", "00" * 31, "00" * 33])
    def test_malformed_hmac_fails_generically(self, bad):
        params = dict(_params(), hmac=bad)
        with pytest.raises(ConnectorError) as exc_info:
            CallbackVerifier(TEST_CLIENT_SECRET).verify(params)
        assert _kind(exc_info) is ErrorKind.HMAC_VERIFICATION_FAILED
        assert str(exc_info.value) == "HMAC verification failed"

    def test_uppercase_hex_accepted(self):
        params = sign(_params())
        params["hmac"] = params["hmac"].upper()
        CallbackVerifier(TEST_CLIENT_SECRET).verify(params)

    def test_missing_secret_is_configuration_error(self):
        with pytest.raises(ConnectorError) as exc_info:
            CallbackVerifier("").verify(sign(_params()))
        assert _kind(exc_info) is ErrorKind.CONFIGURATION_ERROR

    @pytest.mark.parametrize("mangle", [
        lambda h: " ".join(h[i:i + 2] for i in range(0, len(h), 2)),
        lambda h: f" {h}",
        lambda h: f"{h}\n",
    ])
    def test_whitespace_in_hmac_rejected(self, mangle):
        params = sign(_params())
        params["hmac"] = mangle(params["hmac"])
        with pytest.raises(ConnectorError) as exc_info:
            CallbackVerifier(TEST_CLIENT_SECRET).verify(params)
        assert _kind(exc_info) is ErrorKind.HMAC_VERIFICATION_FAILED
