# backend/labprovider/services/wireguard_service.py
"""
WireGuard key rotation, peer registration and client profile rendering.

Private keys live only in the WireGuardService instance for the duration of a
run. A restart loses them; the user simply gets a new key on the next
successful run.

Peer registration never creates peers. Every user index maps to a
pre-provisioned peer slot on OPNsense, found by tunnel address:

1. search the peer by tunnel address
2. update its public key, keeping its name and server attachment
3. search again and require the exact key just written
"""
import base64
import binascii
import logging
from typing import Dict, Optional, Tuple

from labprovider.schemas.feature_config import WireGuardConfig
from labprovider.services.credentials import derive_public_key, generate_keypair
from labprovider.services.interfaces import OPNsenseAPI
from labprovider.services.opnsense_client import OPNsenseAPIError

logger = logging.getLogger(__name__)


class WireGuardConfigError(Exception):
    """Raised for invalid WireGuard configuration or missing key material."""
    pass


class PeerRegistrationError(Exception):
    """Raised when a user's peer could not be registered on OPNsense."""
    pass


class PeerVerificationError(PeerRegistrationError):
    """Raised when the read-after-write check does not show the written key."""
    pass


class WireGuardService:
    """Owns the per-user private keys for one run."""

    def __init__(self, config: WireGuardConfig, opnsense: Optional[OPNsenseAPI] = None):
        self.config = config
        self.opnsense = opnsense
        self._private_keys: Dict[str, str] = {}

    def rotate_user_key(self, username: str) -> Tuple[str, str]:
        """Generate and remember a fresh keypair for ``username``.

        Returns:
            tuple: (private_key_base64, public_key_base64)
        """
        private_key, public_key = generate_keypair()
        self._private_keys[username] = private_key
        return private_key, public_key

    def get_public_key(self, username: str) -> str:
        private_key = self._private_keys.get(username)
        if private_key is None:
            raise WireGuardConfigError(f"no private key found for user {username}")
        try:
            return derive_public_key(private_key)
        except (ValueError, binascii.Error) as e:
            raise WireGuardConfigError(f"invalid private key for user {username}") from e

    def _client_address(self, user_index: int) -> str:
        if user_index < 0 or user_index >= len(self.config.client_addresses):
            raise WireGuardConfigError(
                f"invalid user index {user_index} for WireGuard client addresses"
            )
        return self.config.client_addresses[user_index]

    def generate_client_config(self, username: str, user_index: int) -> str:
        """Render a wg-quick client profile for ``username``.

        Zero/empty optional values (MTU, AllowedIPs, PersistentKeepalive) are
        left out rather than written empty.
        """
        if not self.config.enabled:
            raise WireGuardConfigError("WireGuard is not enabled in configuration")

        address = self._client_address(user_index)

        private_key = self._private_keys.get(username)
        if private_key is None:
            raise WireGuardConfigError(f"no private key found for user {username}")

        lines = [
            "[Interface]",
            f"PrivateKey = {private_key}",
            f"Address = {address}",
        ]
        if self.config.mtu > 0:
            lines.append(f"MTU = {self.config.mtu}")

        lines += [
            "",
            "[Peer]",
            f"PublicKey = {self.config.server_public_key}",
            f"Endpoint = {self.config.server_endpoint}",
        ]
        if self.config.allowed_ips:
            lines.append(f"AllowedIPs = {', '.join(self.config.allowed_ips)}")
        if self.config.keepalive > 0:
            lines.append(f"PersistentKeepalive = {self.config.keepalive}")

        return "\n".join(lines) + "\n"

    def validate_config(self) -> None:
        """Validate the WireGuard configuration; a disabled config is always valid."""
        if not self.config.enabled:
            return
        if not self.config.server_public_key:
            raise WireGuardConfigError("server_public_key is required")
        if not self.config.server_endpoint:
            raise WireGuardConfigError("server_endpoint is required")
        if not self.config.client_addresses:
            raise WireGuardConfigError("client_addresses cannot be empty")
        try:
            decoded = base64.b64decode(self.config.server_public_key, validate=True)
        except (ValueError, binascii.Error):
            decoded = b""
        if len(decoded) != 32:
            raise WireGuardConfigError("invalid server_public_key format (must be 32-byte base64)")

    def register_peer(self, username: str, public_key: str, user_index: int) -> bool:
        """Point the user's pre-provisioned peer slot at ``public_key``.

        No step is retried.

        Returns:
            True once the written key is verified, False when auto-registration
            is disabled and nothing was sent

        Raises:
            PeerRegistrationError: Missing client, bad index, lookup or update
                failure, or no peer at the user's tunnel address
            PeerVerificationError: The peer vanished or carries a different
                key when read back after the update
        """
        if not self.config.auto_register_peers:
            return False

        if self.opnsense is None:
            raise PeerRegistrationError("OPNsense client not configured")

        if user_index < 0 or user_index >= len(self.config.client_addresses):
            raise PeerRegistrationError(f"invalid user index {user_index}")
        tunnel_address = self.config.client_addresses[user_index]

        try:
            peer = self.opnsense.search_peer_by_tunnel_address(tunnel_address)
        except OPNsenseAPIError as e:
            raise PeerRegistrationError(
                f"failed to search peer for {tunnel_address}: {e}"
            ) from e

        if peer is None:
            raise PeerRegistrationError(
                f"no pre-provisioned peer found for tunnel address {tunnel_address}"
            )

        name = peer.name or username
        try:
            self.opnsense.update_peer(peer.uuid, name, public_key, tunnel_address, peer.servers)
        except OPNsenseAPIError as e:
            raise PeerRegistrationError(f"failed to update peer {peer.uuid}: {e}") from e

        try:
            written = self.opnsense.search_peer_by_tunnel_address(tunnel_address)
        except OPNsenseAPIError as e:
            raise PeerRegistrationError(f"failed to verify peer {peer.uuid}: {e}") from e

        if written is None:
            raise PeerVerificationError(
                f"peer for {tunnel_address} disappeared after update"
            )
        if written.pubkey != public_key:
            raise PeerVerificationError(
                f"peer key mismatch for {tunnel_address}: expected {public_key}, got {written.pubkey}"
            )

        logger.info(
            f"Peer {peer.uuid} updated for {username}",
            extra={"user": username, "peer": peer.uuid, "tunnel_address": tunnel_address},
        )
        return True
