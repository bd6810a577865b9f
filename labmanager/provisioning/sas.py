"""Shared access signature (SAS) tokens for event hubs."""
import base64
import hashlib
import hmac
from datetime import UTC, datetime, timedelta
from urllib.parse import quote_plus

from labmanager.core.exceptions import InvalidKeyError

SERVICE_BUS_SUFFIX = "servicebus.windows.net"


def event_hub_resource_uri(namespace_name: str, event_hub_name: str) -> str:
    """Full URI of an event hub within its namespace."""
    return f"https://{namespace_name}.{SERVICE_BUS_SUFFIX}/{event_hub_name}"


def generate_sas_token(
    resource_uri: str,
    access_key: str | None,
    expiry_days: int,
    policy_name: str,
    now: datetime | None = None,
) -> str:
    """
    Sign a SAS token for resource_uri with an authorization rule's key.

    The signature is HMAC-SHA256 over "<encoded uri>\\n<expiry>", keyed by the
    access key, base64 encoded and then URL encoded.

    Args:
        resource_uri: URI of the event hub the token grants access to.
        access_key: Primary key of the authorization rule named policy_name.
        expiry_days: Days from now until the token expires.
        policy_name: Authorization rule name, embedded as skn.
        now: Signing time, UTC. Defaults to the current time.

    Returns:
        "SharedAccessSignature sr=...&sig=...&se=...&skn=..."

    Raises:
        InvalidKeyError: If access_key is None or empty.
    """
    if not access_key:
        raise InvalidKeyError(f"Access key for policy '{policy_name}' is null or empty")

    if now is None:
        now = datetime.now(UTC)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=UTC)

    encoded_uri = quote_plus(resource_uri)
    expiry = int((now + timedelta(days=expiry_days)).timestamp())
    string_to_sign = f"{encoded_uri}\n{expiry}"

    digest = hmac.new(
        access_key.encode("utf-8"), string_to_sign.encode("utf-8"), hashlib.sha256
    ).digest()
    encoded_signature = quote_plus(base64.b64encode(digest).decode("ascii"))

    return (
        f"SharedAccessSignature sr={encoded_uri}&sig={encoded_signature}"
        f"&se={expiry}&skn={policy_name}"
    )
