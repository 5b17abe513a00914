import json
import logging
import os

import click

from tfq import crypto
from tfq.errors import BackendError

logger = logging.getLogger(__name__)

PASSPHRASE_ENVS = ("TFQ_PASSPHRASE", "TF_VAR_passphrase")


def prompt_passphrase():
    return click.prompt("Enter passphrase", hide_input=True, err=True)


def resolve_passphrase(passphrase=None, prompt=None):
    """--passphrase > TFQ_PASSPHRASE > TF_VAR_passphrase > interactive prompt."""
    if passphrase:
        return passphrase
    for name in PASSPHRASE_ENVS:
        value = os.environ.get(name)
        if value:
            logger.debug("passphrase from %s", name)
            return value
    return (prompt or prompt_passphrase)()


def decode_document(data, passphrase=None, prompt=None):
    """Parse a state document, decrypting it first if it's an encrypted envelope."""
    if crypto.is_encrypted(data):
        logger.debug("state is encrypted")
        data = crypto.decrypt_state(data, resolve_passphrase(passphrase, prompt))

    try:
        doc = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise BackendError(f"failed to parse state JSON: {e}") from e
    if not isinstance(doc, dict):
        raise BackendError("state document is not a JSON object")
    return doc


def load_state(backend, passphrase=None, prompt=None):
    """The document addressed by the backend's --sv, decrypted and parsed."""
    if passphrase is None:
        passphrase = backend.opts.passphrase
    return decode_document(backend.state(), passphrase, prompt)
