import json
import os
from pathlib import Path

from dotenv import dotenv_values

from tfq.errors import CredentialsError, host_token_env_var

TFQ_CREDENTIALS_FILE = Path.home() / ".tfq" / "credentials"
TERRAFORM_CREDENTIALS_FILE = Path.home() / ".terraform.d" / "credentials.tfrc.json"
GENERIC_TOKEN_ENV = "TF_TOKEN"


def load_tfq_credentials(path=None):
    """Load ~/.tfq/credentials into os.environ.

    Format: KEY=VALUE, one per line, # comments allowed. Keys already present
    in the environment are left alone, so an explicit export always wins.
    Useful for TF_TOKEN_<host> and TFQ_PASSPHRASE.
    """
    path = Path(path) if path else TFQ_CREDENTIALS_FILE
    if not path.is_file():
        return {}

    creds = {k: v for k, v in dotenv_values(path).items() if v}
    for key, value in creds.items():
        if key not in os.environ:
            os.environ[key] = value
    return creds


def token_from_env(host):
    """Per-host variable first, then the generic TF_TOKEN."""
    per_host = host_token_env_var(host)
    if per_host and os.environ.get(per_host):
        return os.environ[per_host]
    return os.environ.get(GENERIC_TOKEN_ENV) or None


def token_from_credentials_file(host, path=None):
    """Token for host from the terraform login credentials file, or None."""
    path = Path(path) if path else TERRAFORM_CREDENTIALS_FILE
    if not path.is_file():
        return None
    try:
        creds = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError) as e:
        raise CredentialsError(f"failed to read credentials file {path}: {e}") from e

    entry = (creds.get("credentials") or {}).get(host) or {}
    return entry.get("token") or None


def resolve_token(host, backend_token=None, config=None, credentials_file=None):
    """Resolve an API token for host.

    Precedence:
        1. TF_TOKEN_<host with dots as underscores>
        2. TF_TOKEN
        3. token in the backend block
        4. token in user config (namespaced, then global)
        5. ~/.terraform.d/credentials.tfrc.json credentials[host].token

    Returns "" when nothing is found; the server then answers 401.
    """
    token = token_from_env(host)
    if token:
        return token

    if isinstance(backend_token, str) and backend_token:
        return backend_token

    if config is not None:
        token = config.get_string("token")
        if token:
            return token

    return token_from_credentials_file(host, credentials_file) or ""
