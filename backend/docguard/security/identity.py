"""
Client identity extraction.

Rate-limit keys and audit records both name the client by this address, so
it comes from the connection first; X-Forwarded-For, which any client can
set, is only read when the server has no peer address at all.

The gatekeeper resolves the identity once and stores it on
`request.state.identity`; route handlers and exception handlers read it back
through client_identity().
"""

from dataclasses import dataclass

from starlette.requests import Request

UNKNOWN = "unknown"


@dataclass(frozen=True)
class ClientIdentity:
    source_ip: str
    user_agent: str


def _forwarded_for(request: Request) -> str:
    # Left-most hop is the original client
    header = request.headers.get("x-forwarded-for", "")
    return header.split(",")[0].strip()


def extract_identity(request: Request) -> ClientIdentity:
    """
    Resolve the caller's address and user agent.

    Source IP: connection address, else first X-Forwarded-For hop, else
    "unknown". User agent: header value, else "unknown". Missing data never
    fails the request.
    """
    host = request.client.host if request.client else ""
    source_ip = host or _forwarded_for(request) or UNKNOWN
    user_agent = request.headers.get("user-agent", "").strip() or UNKNOWN
    return ClientIdentity(source_ip=source_ip, user_agent=user_agent)


def client_identity(request: Request) -> ClientIdentity:
    """Identity stored by the gatekeeper, or a fresh extraction."""
    identity = getattr(request.state, "identity", None)
    if isinstance(identity, ClientIdentity):
        return identity
    return extract_identity(request)
