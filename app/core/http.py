"""
Ownership of outbound httpx clients.

Services that talk HTTP accept an injected httpx.Client (tests pass one
with a MockTransport) or build their own. A client built by the service
is closed with it; an injected one belongs to the caller.

Usage:
    class PartnerClient(HttpClientOwner):
        def __init__(self, client=None):
            self.set_client(client, timeout=10.0)

    with PartnerClient() as partner:
        partner.client.get(url)
"""

from __future__ import annotations

import httpx


class HttpClientOwner:
    """
    Mixin giving a service a close path for its httpx client.

    Attributes:
        client: httpx client used for every request
        owns_client: True when the client was created here
    """

    client: httpx.Client
    owns_client: bool = False

    def set_client(self, client: httpx.Client | None, timeout: float) -> None:
        self.owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        """Close the client if this object created it."""
        if self.owns_client:
            self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
