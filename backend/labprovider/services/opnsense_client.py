# backend/labprovider/services/opnsense_client.py
"""
Client for the OPNsense WireGuard API.

OPNsense answers most mutation requests with HTTP 200 even when the change
was rejected; the body carries the real outcome, e.g.
``{"result": "", "validations": {"client.pubkey": "invalid"}}``. Every
mutation response is therefore parsed, never judged by status code alone.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

SEARCH_CLIENT_PATH = "/api/wireguard/client/search_client"
SET_CLIENT_PATH = "/api/wireguard/client/set_client/{uuid}"
ADD_CLIENT_PATH = "/api/wireguard/client/add_client"
RECONFIGURE_PATH = "/api/wireguard/service/reconfigure"


class OPNsenseAPIError(Exception):
    """Raised when a request to the OPNsense API fails or is rejected."""
    pass


@dataclass
class PeerRow:
    """A WireGuard client (peer) record as stored on OPNsense.

    ``servers`` names the server instance(s) the peer is attached to and must
    be sent back unchanged on update, otherwise the peer is detached.
    """
    uuid: str
    name: str = ""
    pubkey: str = ""
    tunnel_address: str = ""
    servers: str = ""

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> "PeerRow":
        return cls(
            uuid=row.get("uuid", ""),
            name=row.get("name", "") or "",
            pubkey=row.get("pubkey", "") or "",
            tunnel_address=row.get("tunneladdress", "") or "",
            servers=row.get("servers", "") or "",
        )


def normalize_tunnel_address(address: str) -> str:
    """Strip whitespace and any CIDR suffix: " 10.0.0.1/32 " -> "10.0.0.1"."""
    return address.strip().split("/", 1)[0].strip()


def check_mutation_response(response: httpx.Response) -> None:
    """Validate an OPNsense mutation response.

    Raises:
        OPNsenseAPIError: On a non-2xx status, validation errors in the body,
            or a result other than "" / "saved"
    """
    if response.status_code not in (200, 201):
        raise OPNsenseAPIError(
            f"OPNsense API returned status {response.status_code}: {response.text}"
        )

    try:
        body = response.json()
    except ValueError:
        # Plain-text 2xx bodies carry no result field
        return

    if not isinstance(body, dict):
        return

    validations = body.get("validations")
    if validations:
        raise OPNsenseAPIError(f"OPNsense API returned validation errors: {validations}")

    result = body.get("result", "")
    if result not in ("", "saved"):
        raise OPNsenseAPIError(f"OPNsense API returned unexpected result: {result!r}")


class OPNsenseClient:
    """Synchronous OPNsense WireGuard client using HTTP basic auth."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        api_secret: str,
        http_client: Optional[httpx.Client] = None,
        insecure: bool = False,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        if http_client is None:
            http_client = httpx.Client(verify=not insecure, timeout=timeout)
        self._client = http_client
        self._auth = httpx.BasicAuth(api_key, api_secret)

    def close(self) -> None:
        self._client.close()

    def _post(self, path: str, payload: Optional[Dict[str, Any]] = None) -> httpx.Response:
        return self._client.post(f"{self.base_url}{path}", json=payload, auth=self._auth)

    def search_peer_by_tunnel_address(self, tunnel_address: str) -> Optional[PeerRow]:
        """Find the peer whose tunnel address matches (CIDR suffix ignored).

        Returns:
            The first matching peer, or None when no peer has that address
        """
        wanted = normalize_tunnel_address(tunnel_address)
        try:
            response = self._post(
                SEARCH_CLIENT_PATH,
                {"current": 1, "rowCount": -1, "searchPhrase": wanted},
            )
        except httpx.HTTPError as e:
            raise OPNsenseAPIError(f"failed to search peers: {e}") from e

        if response.status_code != 200:
            raise OPNsenseAPIError(
                f"search peers returned status {response.status_code}: {response.text}"
            )

        try:
            rows = response.json().get("rows", [])
        except (ValueError, AttributeError) as e:
            raise OPNsenseAPIError(f"failed to decode search response: {e}") from e

        for row in rows:
            peer = PeerRow.from_api(row)
            if normalize_tunnel_address(peer.tunnel_address) == wanted:
                return peer
        return None

    def update_peer(
        self,
        uuid: str,
        name: str,
        public_key: str,
        tunnel_address: str,
        servers: str,
    ) -> None:
        """Update an existing peer and apply the configuration."""
        payload = {
            "client": {
                "enabled": "1",
                "name": name,
                "pubkey": public_key,
                "tunneladdress": tunnel_address,
                "servers": servers,
            }
        }
        try:
            response = self._post(SET_CLIENT_PATH.format(uuid=uuid), payload)
            check_mutation_response(response)
        except (httpx.HTTPError, OPNsenseAPIError) as e:
            raise OPNsenseAPIError(f"failed to update peer {uuid}: {e}") from e

        self.apply_changes()

    def create_peer(self, name: str, public_key: str, tunnel_address: str, keepalive: int = 0) -> None:
        """Create a new peer and apply the configuration.

        Keepalive is only sent when positive.
        """
        client: Dict[str, Any] = {
            "enabled": "1",
            "name": name,
            "pubkey": public_key,
            "tunneladdress": tunnel_address,
        }
        if keepalive > 0:
            client["keepalive"] = str(keepalive)

        try:
            response = self._post(ADD_CLIENT_PATH, {"client": client})
        except httpx.HTTPError as e:
            raise OPNsenseAPIError(f"failed to send request: {e}") from e

        try:
            check_mutation_response(response)
        except OPNsenseAPIError as e:
            raise OPNsenseAPIError(f"failed to create peer {name}: {e}") from e

        self.apply_changes()

    def apply_changes(self) -> None:
        """Tell OPNsense to apply pending WireGuard configuration changes."""
        try:
            response = self._post(RECONFIGURE_PATH)
        except httpx.HTTPError as e:
            raise OPNsenseAPIError(f"failed to reconfigure: {e}") from e

        if response.status_code != 200:
            raise OPNsenseAPIError(
                f"reconfigure returned status {response.status_code}: {response.text}"
            )
        logger.debug("OPNsense WireGuard service reconfigured")
