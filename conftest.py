import base64
import json
import os

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

_ENV_VARS = (
    "TF_TOKEN",
    "TF_TOKEN_app_terraform_io",
    "TF_TOKEN_tfe_example_com",
    "TFE_HOSTNAME",
    "TFE_ORGANIZATION",
    "TFQ_CACHE",
    "TFQ_CFG_FILE",
    "TFQ_LOG",
    "TFQ_PASSPHRASE",
    "TF_VAR_passphrase",
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep every test away from the real cache, config and credentials."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TFQ_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setattr("tfq.config.GLOBAL_CONFIG_FILE", tmp_path / "home" / "config.json")
    monkeypatch.setattr("tfq.credentials.TFQ_CREDENTIALS_FILE", tmp_path / "home" / "credentials")
    monkeypatch.setattr(
        "tfq.credentials.TERRAFORM_CREDENTIALS_FILE", tmp_path / "home" / "credentials.tfrc.json"
    )
    return tmp_path


@pytest.fixture
def cache_root(tmp_path):
    return tmp_path / "cache"


def state_doc(serial, lineage="3f1c2a", **resources):
    return json.dumps({
        "version": 4,
        "terraform_version": "1.7.5",
        "serial": serial,
        "lineage": lineage,
        "outputs": {},
        "resources": [{"name": k, "value": v} for k, v in resources.items()],
    }).encode()


def write_state(path, serial, mtime=None, **resources):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(state_doc(serial, **resources))
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def write_pointer(root, backend_type, config=None, hash_=1234):
    pointer = root / ".terraform" / "terraform.tfstate"
    pointer.parent.mkdir(parents=True, exist_ok=True)
    pointer.write_text(json.dumps({
        "version": 3,
        "terraform_version": "1.7.5",
        "backend": {"type": backend_type, "config": config or {}, "hash": hash_},
    }))
    return pointer


def encrypt_envelope(plaintext, passphrase, iterations=1000, key_length=32,
                     hash_function="sha512", salt=b"0123456789abcdef",
                     nonce=b"\x01" * 12, provider="key_provider.pbkdf2.mykey"):
    """Build an OpenTofu-style encrypted state envelope."""
    algorithm = hashes.SHA512() if hash_function == "sha512" else hashes.SHA256()
    key = PBKDF2HMAC(
        algorithm=algorithm, length=key_length, salt=salt, iterations=iterations,
    ).derive(passphrase.encode())
    sealed = AESGCM(key).encrypt(nonce, plaintext, None)

    params = {
        "salt": base64.b64encode(salt).decode(),
        "iterations": iterations,
        "hash_function": hash_function,
        "key_length": key_length,
    }
    return json.dumps({
        "meta": {provider: base64.b64encode(json.dumps(params).encode()).decode()},
        "encrypted_data": base64.b64encode(nonce + sealed).decode(),
    }).encode()
