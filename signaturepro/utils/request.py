# signaturepro/utils/request.py

from typing import Optional

from starlette.requests import HTTPConnection

from signaturepro.audit_trail.schemas import OriginMetadata

UNKNOWN_IP = "0.0.0.0"


def get_client_ip(connection: Optional[HTTPConnection]) -> str:
    """
    Resolve the real client IP behind reverse proxies.

    X-Forwarded-For may hold "client, proxy1, proxy2"; the first entry is
    the client. Falls back to X-Real-IP, then to the socket peer.
    """
    if connection is None:
        return UNKNOWN_IP

    x_forwarded_for = connection.headers.get("x-forwarded-for")
    if x_forwarded_for:
        client_ip = x_forwarded_for.split(",")[0].strip()
        if client_ip:
            return client_ip

    x_real_ip = connection.headers.get("x-real-ip")
    if x_real_ip:
        return x_real_ip.strip()

    if connection.client and connection.client.host:
        return connection.client.host
    return UNKNOWN_IP


def get_origin_metadata(connection: Optional[HTTPConnection]) -> Optional[OriginMetadata]:
    """Build the origin metadata recorded on audit events for this request."""
    if connection is None:
        return None
    return OriginMetadata(
        ip_address=get_client_ip(connection),
        user_agent=connection.headers.get("user-agent"),
    )
