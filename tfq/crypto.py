"""Decryption of OpenTofu encrypted state documents.

Envelope format:

    {
      "meta": {"key_provider.pbkdf2.<name>": base64(JSON{salt, iterations,
                                                          hash_function,
                                                          key_length})},
      "encrypted_data": base64(nonce || ciphertext || tag)
    }

The key is derived with PBKDF2-HMAC using exactly the parameters stored in
the envelope, then the payload is opened with AES-GCM. Every failure raises
a DecryptionError subclass; no partial plaintext is ever returned.
"""

import base64
import binascii
import json

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from tfq.errors import (
    CiphertextTooShortError,
    DecryptionAuthError,
    DecryptionError,
    MalformedEncodingError,
    MalformedParametersError,
)

ENCRYPTED_MARKER = "encrypted_data"
KEY_PROVIDER_PREFIX = "key_provider.pbkdf2."
NONCE_SIZE = 12

_HASHES = {
    "sha512": hashes.SHA512,
    "sha256": hashes.SHA256,
}


def _load(data):
    if isinstance(data, dict):
        return data
    try:
        doc = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
        return None
    return doc if isinstance(doc, dict) else None


def is_encrypted(data):
    """True if data is a JSON object carrying the encrypted_data marker."""
    doc = _load(data)
    return doc is not None and ENCRYPTED_MARKER in doc


def _b64decode(value, what):
    if not isinstance(value, str):
        raise MalformedEncodingError(f"{what} is not a base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedEncodingError(f"failed to decode {what}: {e}") from e


def _is_count(value):
    return isinstance(value, int) and not isinstance(value, bool)


def key_provider_params(envelope):
    """Decode the PBKDF2 key provider block from the envelope's meta."""
    meta = envelope.get("meta")
    if not isinstance(meta, dict):
        raise MalformedParametersError("envelope has no meta block")

    encoded = None
    for name, value in meta.items():
        if name.startswith(KEY_PROVIDER_PREFIX):
            encoded = value
            break
    if encoded is None:
        raise MalformedParametersError("no pbkdf2 key provider found in meta")

    raw = _b64decode(encoded, "key provider config")
    try:
        params = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedParametersError(f"failed to parse key provider config: {e}") from e

    if not isinstance(params, dict):
        raise MalformedParametersError("key provider config is not an object")

    iterations = params.get("iterations")
    key_length = params.get("key_length")
    if not _is_count(iterations) or iterations <= 0:
        raise MalformedParametersError(f"invalid iterations: {iterations!r}")
    if not _is_count(key_length) or key_length not in (16, 24, 32):
        raise MalformedParametersError(f"invalid key_length: {key_length!r}")

    hash_name = params.get("hash_function") or "sha512"
    if not isinstance(hash_name, str) or hash_name.lower() not in _HASHES:
        raise MalformedParametersError(f"unsupported hash_function: {hash_name!r}")
    hash_name = hash_name.lower()

    return {
        "salt": _b64decode(params.get("salt"), "salt"),
        "iterations": iterations,
        "hash_function": hash_name,
        "key_length": key_length,
    }


def derive_key(passphrase, salt, iterations, key_length, hash_function="sha512"):
    kdf = PBKDF2HMAC(
        algorithm=_HASHES[hash_function](),
        length=key_length,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def decrypt_payload(encrypted_data, key):
    """Open base64(nonce || ciphertext || tag) with AES-GCM."""
    blob = _b64decode(encrypted_data, "encrypted_data")
    if len(blob) < NONCE_SIZE:
        raise CiphertextTooShortError(
            f"ciphertext too short: expected at least {NONCE_SIZE} bytes, got {len(blob)}"
        )

    nonce, sealed = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
    try:
        return AESGCM(key).decrypt(nonce, sealed, None)
    except InvalidTag as e:
        raise DecryptionAuthError("failed to decrypt: authentication failed") from e
    except ValueError as e:
        raise DecryptionError(f"failed to decrypt: {e}") from e


def decrypt_state(data, passphrase):
    """Decrypt an encrypted state envelope and return the plaintext document."""
    envelope = _load(data)
    if envelope is None:
        raise MalformedEncodingError("state is not a JSON object")
    if ENCRYPTED_MARKER not in envelope:
        raise MalformedParametersError("state is not encrypted")

    params = key_provider_params(envelope)
    key = derive_key(
        passphrase,
        params["salt"],
        params["iterations"],
        params["key_length"],
        params["hash_function"],
    )
    return decrypt_payload(envelope[ENCRYPTED_MARKER], key)
