"""Error taxonomy for the lab manager.

Configuration errors are fatal to a run. Everything raised while provisioning a
single attendee is caught at that attendee's task boundary and recorded in the
report instead of aborting the batch.
"""


class LabManagerError(Exception):
    """Base class for all lab manager errors."""


class ConfigurationError(LabManagerError):
    """Raised when the settings file or attendee roster is missing or malformed."""


class ProviderError(LabManagerError):
    """Raised when the cloud provider rejects or fails a request.

    Covers rate limiting (HTTP 429), transient network failures and
    duplicate-name conflicts.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ResourceNotFoundError(LabManagerError):
    """Raised when a resource a dependent step expects does not exist."""


class InvalidKeyError(LabManagerError):
    """Raised when an access key needed for signing is absent or empty."""


class ConfirmationDeclinedError(LabManagerError):
    """Raised when the operator declines a destructive action."""


class AttendeeProvisioningError(LabManagerError):
    """Raised after an attendee's resource kinds were attempted and some failed.

    The partially populated result travels with the error so the report can
    still show what succeeded.
    """

    def __init__(self, result, failures: dict[str, str]):
        names = ", ".join(sorted(failures))
        super().__init__(f"{len(failures)} resource kind(s) failed ({names})")
        self.result = result
        self.failures = failures
