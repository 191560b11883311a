"""Key generation, did:key encoding and ECDSA signing for DID-PLC.

Secrets travel as private EC JSON Web Keys (the portable form users are asked
to store). Public keys travel as multibase strings: ``z`` + base58btc of the
two byte multicodec prefix for the curve followed by the compressed SEC1 point.
Signatures are raw ``r || s`` (64 bytes), low-S normalized, over SHA-256.
"""

import base64
import binascii
from enum import Enum
from typing import Optional, Tuple, Union

import base58
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from jwcrypto import jwk
from jwcrypto.common import JWException

from social.graze.tandem.errors import (
    CurveMismatch,
    KeyDecodingError,
    SignatureError,
    UnsupportedCurve,
)

DID_KEY_PREFIX = "did:key:"
MULTIBASE_BASE58BTC = "z"


class Curve(str, Enum):
    """Elliptic curves usable as DID-PLC rotation and signing keys."""

    p256 = "P-256"
    k256 = "secp256k1"

    @property
    def multicodec_prefix(self) -> bytes:
        return _MULTICODEC_PREFIXES[self]

    @property
    def order(self) -> int:
        return _CURVE_ORDERS[self]

    def ec_curve(self) -> ec.EllipticCurve:
        if self is Curve.p256:
            return ec.SECP256R1()
        return ec.SECP256K1()

    @staticmethod
    def from_prefix(prefix: bytes) -> "Curve":
        for curve, value in _MULTICODEC_PREFIXES.items():
            if value == prefix:
                return curve
        raise UnsupportedCurve(prefix.hex())

    @staticmethod
    def from_name(name: str) -> "Curve":
        try:
            return Curve(name)
        except ValueError:
            raise UnsupportedCurve(name) from None


_MULTICODEC_PREFIXES = {
    Curve.p256: bytes([0x80, 0x24]),
    Curve.k256: bytes([0xE7, 0x01]),
}

_CURVE_ORDERS = {
    Curve.p256: 0xFFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551,
    Curve.k256: 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141,
}

SecretKey = Union[str, jwk.JWK]


def load_secret(secret: SecretKey) -> Tuple[jwk.JWK, Curve]:
    """Parse a private EC JWK and report its curve.

    Args:
        secret: JWK JSON string or an already parsed ``jwk.JWK``

    Returns:
        The parsed key and its curve

    Raises:
        KeyDecodingError: the value is not a private EC JWK
        UnsupportedCurve: the JWK uses a curve other than P-256 or secp256k1
    """
    if isinstance(secret, jwk.JWK):
        key = secret
    else:
        try:
            key = jwk.JWK.from_json(secret)
        except (JWException, ValueError, TypeError) as e:
            raise KeyDecodingError("failed to parse JWK") from e

    if key.get("kty") != "EC":
        raise KeyDecodingError(f"expected an EC JWK, got kty={key.get('kty')!r}")
    if not key.has_private:
        raise KeyDecodingError("JWK does not contain a private key")

    return key, Curve.from_name(key.get("crv"))


def generate_key(curve: Curve = Curve.p256) -> Tuple[str, str]:
    """Generate a key pair.

    Returns:
        The secret as private JWK JSON and the multibase encoded public key
    """
    key = jwk.JWK.generate(kty="EC", crv=curve.value)
    return key.export_private(), _encode_public_key(key, curve)


def public_key_from_secret(secret: SecretKey, curve: Optional[Curve] = None) -> str:
    """Derive the multibase encoded public key of a secret.

    Raises:
        CurveMismatch: ``curve`` was given and the secret uses another curve
        KeyDecodingError: the secret cannot be used for signatures
    """
    key, key_curve = load_secret(secret)
    _check_curve(curve, key_curve)
    return _encode_public_key(key, key_curve)


def did_key_from_secret(secret: SecretKey) -> str:
    return to_did_key(public_key_from_secret(secret))


def to_did_key(public_key: str) -> str:
    if public_key.startswith(DID_KEY_PREFIX):
        return public_key
    return f"{DID_KEY_PREFIX}{public_key}"


def encode_public_key(curve: Curve, compressed_point: bytes) -> str:
    full = curve.multicodec_prefix + compressed_point
    return MULTIBASE_BASE58BTC + base58.b58encode(full).decode("ascii")


def decode_public_key(public_key: str) -> Tuple[Curve, ec.EllipticCurvePublicKey]:
    """Decode a multibase or did:key public key.

    Raises:
        KeyDecodingError: malformed multibase or invalid curve point
        UnsupportedCurve: unrecognized multicodec prefix
    """
    value = public_key.removeprefix(DID_KEY_PREFIX)
    if not value.startswith(MULTIBASE_BASE58BTC):
        raise KeyDecodingError(f"unsupported multibase encoding: {public_key!r}")
    try:
        decoded = base58.b58decode(value[1:])
    except ValueError as e:
        raise KeyDecodingError(f"invalid base58btc value: {public_key!r}") from e
    if len(decoded) < 3:
        raise KeyDecodingError(f"multibase value too short: {public_key!r}")

    curve = Curve.from_prefix(decoded[:2])
    try:
        verifying_key = ec.EllipticCurvePublicKey.from_encoded_point(
            curve.ec_curve(), decoded[2:]
        )
    except ValueError as e:
        raise KeyDecodingError(f"invalid {curve.value} point: {public_key!r}") from e
    return curve, verifying_key


def sign(secret: SecretKey, payload: bytes, curve: Optional[Curve] = None) -> bytes:
    """Sign ``payload`` with ECDSA/SHA-256.

    Returns:
        64 byte ``r || s`` signature with ``s`` in the lower half of the order
    """
    key, key_curve = load_secret(secret)
    _check_curve(curve, key_curve)

    signing_key = _op_key(key, "sign")
    der_signature = signing_key.sign(payload, ec.ECDSA(hashes.SHA256()))
    r, s = decode_dss_signature(der_signature)
    if s > key_curve.order // 2:
        s = key_curve.order - s
    return r.to_bytes(32, "big") + s.to_bytes(32, "big")


def verify(public_key: str, signature: bytes, message: bytes) -> bool:
    """Verify a raw ``r || s`` signature against a multibase or did:key key.

    Raises:
        UnsupportedCurve: the key prefix names an unknown curve
        KeyDecodingError: the key is malformed
        SignatureError: the signature is malformed or does not verify
    """
    curve, verifying_key = decode_public_key(public_key)

    if len(signature) != 64:
        raise SignatureError(f"expected a 64 byte signature, got {len(signature)}")
    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:], "big")

    try:
        verifying_key.verify(
            encode_dss_signature(r, s), message, ec.ECDSA(hashes.SHA256())
        )
    except InvalidSignature as e:
        raise SignatureError(f"signature does not verify against {public_key}") from e
    return True


def encode_signature(signature: bytes) -> str:
    return base64.urlsafe_b64encode(signature).decode("ascii").rstrip("=")


def decode_signature(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    try:
        return base64.urlsafe_b64decode(value + padding)
    except (binascii.Error, ValueError) as e:
        raise SignatureError(f"invalid base64url signature: {value!r}") from e


def _encode_public_key(key: jwk.JWK, curve: Curve) -> str:
    verifying_key = _op_key(key, "verify")
    compressed = verifying_key.public_bytes(Encoding.X962, PublicFormat.CompressedPoint)
    return encode_public_key(curve, compressed)


def _op_key(key: jwk.JWK, operation: str):
    try:
        return key.get_op_key(operation)
    except JWException as e:
        raise KeyDecodingError(f"key cannot be used to {operation}: {e}") from e


def _check_curve(expected: Optional[Curve], actual: Curve) -> None:
    if expected is not None and expected != actual:
        raise CurveMismatch(expected.value, actual.value)
