"""
Hashing and transaction-signer keys.

Report integrity hashes, event ids and callback selectors use Keccak-256.
Transaction senders sign with ECDSA over P-256; their address is the
first 20 bytes of the SHA-256 of the DER-encoded public key.
"""
import hashlib
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives import serialization
from cryptography.exceptions import InvalidSignature
from Crypto.Hash import keccak

ADDRESS_LENGTH = 20
SELECTOR_LENGTH = 4

_SIGNATURE_SCHEME = ec.ECDSA(hashes.SHA256())
_KEY_FORMAT = serialization.PublicFormat.SubjectPublicKeyInfo


def generate_hash(data: bytes) -> bytes:
    return keccak.new(digest_bits=256, data=data).digest()


def function_selector(signature: str) -> bytes:
    """Selector for a call signature such as `onSettle(uint256,uint256,uint256,address,address)`."""
    return generate_hash(signature.encode('utf-8'))[:SELECTOR_LENGTH]


def generate_key_pair() -> tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    """Fresh signer key; the sender's public half travels as PEM text."""
    signer = ec.generate_private_key(ec.SECP256R1())
    return signer, signer.public_key()


def serialize_public_key(public_key: ec.EllipticCurvePublicKey) -> str:
    return public_key.public_bytes(serialization.Encoding.PEM, _KEY_FORMAT).decode('utf-8')


def _load_public_key(sender_pem: str) -> ec.EllipticCurvePublicKey:
    return serialization.load_pem_public_key(sender_pem.encode('utf-8'))


def public_key_to_address(sender_pem: str) -> bytes:
    """Account address that owns balances and nonces for this sender."""
    der = _load_public_key(sender_pem).public_bytes(serialization.Encoding.DER, _KEY_FORMAT)
    return hashlib.sha256(der).digest()[:ADDRESS_LENGTH]


def sign(private_key: ec.EllipticCurvePrivateKey, payload: bytes) -> bytes:
    return private_key.sign(payload, _SIGNATURE_SCHEME)


def verify_signature(sender_pem: str, signature: bytes, payload: bytes) -> bool:
    """False for a bad signature or a PEM that does not parse."""
    try:
        _load_public_key(sender_pem).verify(signature, payload, _SIGNATURE_SCHEME)
    except (InvalidSignature, ValueError, TypeError):
        return False
    return True
