"""
Unit tests for social.graze.tandem.atproto.crypto

Tests cover key generation on both supported curves, multibase and did:key
encoding, curve discrimination by multicodec prefix, and ECDSA signatures.
"""

import json

import base58
import pytest
from jwcrypto import jwk

from social.graze.tandem.atproto.crypto import (
    Curve,
    decode_public_key,
    decode_signature,
    did_key_from_secret,
    encode_public_key,
    encode_signature,
    generate_key,
    load_secret,
    public_key_from_secret,
    sign,
    to_did_key,
    verify,
)
from social.graze.tandem.errors import (
    CurveMismatch,
    KeyDecodingError,
    SignatureError,
    UnsupportedCurve,
)


class TestCurve:
    """Test suite for the Curve enumeration."""

    def test_multicodec_prefixes(self):
        """Test each curve carries its two byte multicodec prefix."""
        assert Curve.p256.multicodec_prefix == bytes([0x80, 0x24])
        assert Curve.k256.multicodec_prefix == bytes([0xE7, 0x01])

    def test_from_prefix(self):
        """Test curves are recovered from their prefix."""
        assert Curve.from_prefix(bytes([0x80, 0x24])) is Curve.p256
        assert Curve.from_prefix(bytes([0xE7, 0x01])) is Curve.k256

    def test_from_unknown_prefix(self):
        """Test an unknown prefix raises UnsupportedCurve."""
        with pytest.raises(UnsupportedCurve):
            Curve.from_prefix(bytes([0xED, 0x01]))

    def test_from_name(self):
        """Test JWK curve names map to curves."""
        assert Curve.from_name("P-256") is Curve.p256
        assert Curve.from_name("secp256k1") is Curve.k256
        with pytest.raises(UnsupportedCurve):
            Curve.from_name("P-384")


class TestGenerateKey:
    """Test suite for key generation."""

    @pytest.mark.parametrize("curve", [Curve.p256, Curve.k256])
    def test_generate_key(self, curve):
        """Test generated keys are private JWKs with matching public keys."""
        secret_key, public_key = generate_key(curve)

        parsed = json.loads(secret_key)
        assert parsed["kty"] == "EC"
        assert parsed["crv"] == curve.value
        assert "d" in parsed
        assert public_key.startswith("z")
        assert public_key_from_secret(secret_key) == public_key

    def test_generate_key_default_curve(self):
        """Test P-256 is the default curve."""
        secret_key, public_key = generate_key()

        _, curve = load_secret(secret_key)
        assert curve is Curve.p256
        assert public_key.startswith("zDn")

    def test_k256_public_key_prefix(self):
        """Test secp256k1 keys have the familiar zQ3s prefix."""
        _, public_key = generate_key(Curve.k256)
        assert public_key.startswith("zQ3s")

    def test_generated_keys_differ(self):
        """Test two generated keys are distinct."""
        assert generate_key()[1] != generate_key()[1]


class TestLoadSecret:
    """Test suite for private JWK parsing."""

    def test_load_secret_from_jwk(self, p256_key):
        """Test an already parsed JWK is accepted."""
        secret_key, public_key = p256_key
        key = jwk.JWK.from_json(secret_key)

        assert public_key_from_secret(key) == public_key

    def test_load_secret_invalid_json(self):
        """Test garbage input raises KeyDecodingError."""
        with pytest.raises(KeyDecodingError):
            load_secret("not a jwk")

    def test_load_secret_public_only(self, p256_key):
        """Test a public JWK is rejected."""
        key = jwk.JWK.from_json(p256_key[0])
        with pytest.raises(KeyDecodingError):
            load_secret(key.export_public())

    def test_load_secret_wrong_key_type(self):
        """Test non-EC keys are rejected."""
        key = jwk.JWK.generate(kty="oct", size=256)
        with pytest.raises(KeyDecodingError):
            load_secret(key.export())

    def test_load_secret_unsupported_curve(self):
        """Test EC keys on other curves are rejected."""
        key = jwk.JWK.generate(kty="EC", crv="P-384")
        with pytest.raises(UnsupportedCurve):
            load_secret(key.export_private())

    def test_encryption_key_rejected(self):
        """Test keys restricted to encryption cannot derive or sign."""
        secret_key = jwk.JWK.generate(kty="EC", crv="P-256", use="enc").export_private()

        with pytest.raises(KeyDecodingError):
            public_key_from_secret(secret_key)
        with pytest.raises(KeyDecodingError):
            sign(secret_key, b"payload")

    def test_restricted_key_ops_rejected(self):
        """Test keys whose key_ops exclude signing cannot sign."""
        secret_key = jwk.JWK.generate(
            kty="EC", crv="P-256", key_ops=["verify"]
        ).export_private()

        with pytest.raises(KeyDecodingError):
            sign(secret_key, b"payload")


class TestPublicKeyEncoding:
    """Test suite for multibase and did:key encoding."""

    @pytest.mark.parametrize("curve", [Curve.p256, Curve.k256])
    def test_decode_generated_key(self, curve):
        """Test decoding identifies the curve of a generated key."""
        _, public_key = generate_key(curve)

        decoded_curve, _ = decode_public_key(public_key)

        assert decoded_curve is curve

    def test_decode_accepts_did_key(self, k256_key):
        """Test did:key values decode like bare multibase values."""
        _, public_key = k256_key

        curve, _ = decode_public_key(to_did_key(public_key))

        assert curve is Curve.k256

    def test_encoding_layout(self, p256_key):
        """Test multibase values are prefix plus 33 byte compressed point."""
        _, public_key = p256_key

        decoded = base58.b58decode(public_key[1:])

        assert decoded[:2] == bytes([0x80, 0x24])
        assert len(decoded) == 35
        assert decoded[2] in (0x02, 0x03)

    def test_encode_public_key_round_trip(self, p256_key):
        """Test re-encoding a decoded point yields the same string."""
        _, public_key = p256_key
        decoded = base58.b58decode(public_key[1:])

        assert encode_public_key(Curve.p256, decoded[2:]) == public_key

    def test_same_point_bytes_distinguished_by_prefix(self, p256_key):
        """Test the prefix, not the point, selects the curve."""
        _, public_key = p256_key
        point = base58.b58decode(public_key[1:])[2:]

        relabelled = encode_public_key(Curve.k256, point)

        assert relabelled != public_key
        try:
            curve, _ = decode_public_key(relabelled)
        except KeyDecodingError:
            # The P-256 point is not on secp256k1.
            return
        assert curve is Curve.k256

    def test_to_did_key(self):
        """Test did:key prefixing is idempotent."""
        assert to_did_key("zabc") == "did:key:zabc"
        assert to_did_key("did:key:zabc") == "did:key:zabc"

    def test_did_key_from_secret(self, p256_key):
        """Test did:key derivation matches the generated public key."""
        secret_key, public_key = p256_key
        assert did_key_from_secret(secret_key) == f"did:key:{public_key}"

    def test_decode_wrong_multibase(self):
        """Test non base58btc multibase values are rejected."""
        with pytest.raises(KeyDecodingError):
            decode_public_key("mAbCd")

    def test_decode_invalid_base58(self):
        """Test characters outside the base58 alphabet are rejected."""
        with pytest.raises(KeyDecodingError):
            decode_public_key("z0OIl")

    def test_decode_too_short(self):
        """Test values with no key material are rejected."""
        with pytest.raises(KeyDecodingError):
            decode_public_key("z" + base58.b58encode(bytes([0x80, 0x24])).decode())

    def test_decode_unknown_prefix(self):
        """Test unknown multicodec prefixes raise UnsupportedCurve."""
        value = "z" + base58.b58encode(bytes([0xED, 0x01]) + bytes(32)).decode()
        with pytest.raises(UnsupportedCurve):
            decode_public_key(value)

    def test_decode_invalid_point(self):
        """Test bytes that are not a curve point are rejected."""
        value = "z" + base58.b58encode(bytes([0x80, 0x24, 0x02]) + bytes([0xFF] * 32)).decode()
        with pytest.raises(KeyDecodingError):
            decode_public_key(value)


class TestSignatures:
    """Test suite for ECDSA signing and verification."""

    @pytest.mark.parametrize("curve", [Curve.p256, Curve.k256])
    def test_sign_and_verify(self, curve):
        """Test a signature verifies against the matching public key."""
        secret_key, public_key = generate_key(curve)

        signature = sign(secret_key, b"hello")

        assert len(signature) == 64
        assert verify(public_key, signature, b"hello") is True
        assert verify(to_did_key(public_key), signature, b"hello") is True

    @pytest.mark.parametrize("curve", [Curve.p256, Curve.k256])
    def test_signatures_are_low_s(self, curve):
        """Test s is always in the lower half of the curve order."""
        secret_key, _ = generate_key(curve)

        for index in range(8):
            signature = sign(secret_key, f"message {index}".encode())
            s = int.from_bytes(signature[32:], "big")
            assert s <= curve.order // 2

    def test_verify_wrong_message(self, p256_key):
        """Test a signature over other bytes fails."""
        secret_key, public_key = p256_key
        signature = sign(secret_key, b"hello")

        with pytest.raises(SignatureError):
            verify(public_key, signature, b"goodbye")

    def test_verify_wrong_key(self, p256_key):
        """Test a signature from another key fails."""
        secret_key, _ = p256_key
        _, other_public_key = generate_key()
        signature = sign(secret_key, b"hello")

        with pytest.raises(SignatureError):
            verify(other_public_key, signature, b"hello")

    def test_verify_other_curve(self, p256_key, k256_key):
        """Test a P-256 signature does not verify against a secp256k1 key."""
        signature = sign(p256_key[0], b"hello")

        with pytest.raises(SignatureError):
            verify(k256_key[1], signature, b"hello")

    def test_verify_bad_length(self, p256_key):
        """Test signatures that are not 64 bytes are rejected."""
        with pytest.raises(SignatureError):
            verify(p256_key[1], bytes(63), b"hello")

    def test_sign_curve_mismatch(self, p256_key):
        """Test requesting a curve other than the key's raises CurveMismatch."""
        with pytest.raises(CurveMismatch):
            sign(p256_key[0], b"hello", curve=Curve.k256)

    def test_public_key_curve_mismatch(self, k256_key):
        """Test deriving a public key for the wrong curve raises CurveMismatch."""
        with pytest.raises(CurveMismatch):
            public_key_from_secret(k256_key[0], curve=Curve.p256)

    def test_signature_text_encoding(self, p256_key):
        """Test signatures travel as unpadded base64url."""
        signature = sign(p256_key[0], b"hello")

        encoded = encode_signature(signature)

        assert "=" not in encoded
        assert "+" not in encoded and "/" not in encoded
        assert decode_signature(encoded) == signature

    def test_decode_invalid_signature_text(self):
        """Test malformed base64url raises SignatureError."""
        with pytest.raises(SignatureError):
            decode_signature("a")
