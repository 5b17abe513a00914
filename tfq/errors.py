"""Error types raised by tfq.

Every error raised by the query layer derives from TfqError so the CLI can
print it and exit non-zero. Underlying causes are always chained with
``raise ... from err`` so callers can inspect ``__cause__``.
"""


class TfqError(Exception):
    """Base class for all tfq errors."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class ConfigurationError(TfqError):
    pass


class OrganizationNotSetError(ConfigurationError):
    pass


class WorkspaceNotSetError(ConfigurationError):
    pass


class WorkspaceNameAndPrefixError(ConfigurationError):
    pass


class CredentialsError(ConfigurationError):
    pass


# ---------------------------------------------------------------------------
# Hosted API
# ---------------------------------------------------------------------------

class AuthenticationError(TfqError):
    pass


class NotFoundError(TfqError):
    pass


class APIError(TfqError):
    pass


# ---------------------------------------------------------------------------
# Revision addressing
# ---------------------------------------------------------------------------

class ResolutionError(TfqError):
    pass


class InvalidSpecError(ResolutionError):
    pass


class OffsetOutOfRangeError(ResolutionError):
    pass


class SerialNotFoundError(ResolutionError):
    pass


class IdentityNotFoundError(ResolutionError):
    pass


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------

class BackendTypeError(TfqError):
    pass


class UnsupportedOperationError(TfqError):
    pass


class BackendError(TfqError):
    """A storage origin (file system, bucket) failed to produce a document."""


# ---------------------------------------------------------------------------
# Decryption
# ---------------------------------------------------------------------------

class DecryptionError(TfqError):
    pass


class MalformedEncodingError(DecryptionError):
    pass


class MalformedParametersError(DecryptionError):
    pass


class CiphertextTooShortError(DecryptionError):
    pass


class DecryptionAuthError(DecryptionError):
    pass


def host_token_env_var(host):
    """Name of the per-host token variable, e.g. TF_TOKEN_app_terraform_io."""
    if not host:
        return ""
    return "TF_TOKEN_" + host.replace(".", "_")


def friendly_api_error(err, host=None, org=None, workspace=None, operation=None):
    """Map a hosted-API client error to a tfq error with request context.

    The original error is attached as ``__cause__``.
    """
    from tfq.tfe import ResourceNotFoundError, UnauthorizedError

    host = host or "<unknown>"
    operation = operation or "request"

    if isinstance(err, UnauthorizedError):
        env_var = host_token_env_var(host if host != "<unknown>" else "")
        hint = f"Set {env_var} or TF_TOKEN" if env_var else "Set TF_TOKEN"
        exc = AuthenticationError(f"{operation} on {host}: authentication failed (401). {hint}")
    elif isinstance(err, ResourceNotFoundError):
        if workspace:
            exc = NotFoundError(
                f"{operation}: workspace {workspace!r} not found in organization "
                f"{org or '<unknown>'!r} on {host} (404)"
            )
        else:
            exc = NotFoundError(
                f"{operation}: organization {org or '<unknown>'!r} not found on {host} (404)"
            )
    else:
        exc = APIError(f"{operation} on {host} for org={org!r} workspace={workspace!r}: {err}")

    exc.__cause__ = err
    return exc
