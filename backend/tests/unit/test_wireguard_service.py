"""Tests for WireGuardService key rotation, peer registration and profiles."""
import pytest

from labprovider.services.credentials import derive_public_key
from labprovider.services.opnsense_client import OPNsenseAPIError, PeerRow
from labprovider.services.wireguard_service import (
    PeerRegistrationError,
    PeerVerificationError,
    WireGuardConfigError,
    WireGuardService,
)


def peer(pubkey="OLDKEY", name="student-slot-1", servers="server-uuid"):
    return PeerRow(uuid="u-1", name=name, pubkey=pubkey, tunnel_address="10.200.0.2/32", servers=servers)


class TestKeyRotation:

    def test_rotate_stores_private_key(self, wireguard_config):
        service = WireGuardService(wireguard_config)

        private_key, public_key = service.rotate_user_key("alice")

        assert derive_public_key(private_key) == public_key
        assert service.get_public_key("alice") == public_key

    def test_rotate_replaces_previous_key(self, wireguard_config):
        service = WireGuardService(wireguard_config)
        first, _ = service.rotate_user_key("alice")
        second, _ = service.rotate_user_key("alice")

        assert first != second
        assert "PrivateKey = " + second in service.generate_client_config("alice", 0)

    def test_get_public_key_unknown_user(self, wireguard_config):
        with pytest.raises(WireGuardConfigError, match="no private key found for user bob"):
            WireGuardService(wireguard_config).get_public_key("bob")

    def test_keys_are_per_instance(self, wireguard_config):
        one = WireGuardService(wireguard_config)
        one.rotate_user_key("alice")

        with pytest.raises(WireGuardConfigError):
            WireGuardService(wireguard_config).get_public_key("alice")


class TestGenerateClientConfig:

    def test_full_profile(self, wireguard_config, server_public_key):
        service = WireGuardService(wireguard_config)
        private_key, _ = service.rotate_user_key("alice")

        config = service.generate_client_config("alice", 1)

        assert config == (
            "[Interface]\n"
            f"PrivateKey = {private_key}\n"
            "Address = 10.200.0.3/32\n"
            "MTU = 1420\n"
            "\n"
            "[Peer]\n"
            f"PublicKey = {server_public_key}\n"
            "Endpoint = vpn.example.com:51820\n"
            "AllowedIPs = 10.200.0.0/24, 192.168.50.0/24\n"
            "PersistentKeepalive = 25\n"
        )

    def test_optional_values_omitted(self, wireguard_config):
        config = wireguard_config.model_copy(update={"mtu": 0, "keepalive": 0, "allowed_ips": []})
        service = WireGuardService(config)
        service.rotate_user_key("alice")

        profile = service.generate_client_config("alice", 0)

        assert "MTU" not in profile
        assert "AllowedIPs" not in profile
        assert "PersistentKeepalive" not in profile

    def test_disabled(self, wireguard_config):
        service = WireGuardService(wireguard_config.model_copy(update={"enabled": False}))
        service.rotate_user_key("alice")

        with pytest.raises(WireGuardConfigError, match="not enabled"):
            service.generate_client_config("alice", 0)

    @pytest.mark.parametrize("index", [-1, 2])
    def test_invalid_index(self, wireguard_config, index):
        service = WireGuardService(wireguard_config)
        service.rotate_user_key("alice")

        with pytest.raises(WireGuardConfigError, match=f"invalid user index {index}"):
            service.generate_client_config("alice", index)

    def test_missing_key(self, wireguard_config):
        with pytest.raises(WireGuardConfigError, match="no private key found"):
            WireGuardService(wireguard_config).generate_client_config("alice", 0)


class TestValidateConfig:

    def test_valid(self, wireguard_config):
        WireGuardService(wireguard_config).validate_config()

    def test_disabled_is_always_valid(self, wireguard_config):
        config = wireguard_config.model_copy(update={"enabled": False, "server_public_key": ""})

        WireGuardService(config).validate_config()

    @pytest.mark.parametrize("update,message", [
        ({"server_public_key": ""}, "server_public_key is required"),
        ({"server_endpoint": ""}, "server_endpoint is required"),
        ({"client_addresses": []}, "client_addresses cannot be empty"),
        ({"server_public_key": "c2hvcnQ="}, "invalid server_public_key format"),
        ({"server_public_key": "not base64!!"}, "invalid server_public_key format"),
    ])
    def test_invalid(self, wireguard_config, update, message):
        service = WireGuardService(wireguard_config.model_copy(update=update))

        with pytest.raises(WireGuardConfigError, match=message):
            service.validate_config()


class TestRegisterPeer:

    def test_update_preserves_name_and_servers(self, wireguard_config, mock_opnsense):
        mock_opnsense.search_peer_by_tunnel_address.side_effect = [peer(), peer(pubkey="NEWKEY")]
        service = WireGuardService(wireguard_config, mock_opnsense)

        assert service.register_peer("alice", "NEWKEY", 0) is True

        mock_opnsense.update_peer.assert_called_once_with(
            "u-1", "student-slot-1", "NEWKEY", "10.200.0.2/32", "server-uuid"
        )
        assert mock_opnsense.search_peer_by_tunnel_address.call_count == 2
        mock_opnsense.create_peer.assert_not_called()

    def test_empty_peer_name_falls_back_to_username(self, wireguard_config, mock_opnsense):
        mock_opnsense.search_peer_by_tunnel_address.side_effect = [peer(name=""), peer(pubkey="NEWKEY")]

        WireGuardService(wireguard_config, mock_opnsense).register_peer("alice", "NEWKEY", 0)

        assert mock_opnsense.update_peer.call_args[0][1] == "alice"

    def test_disabled_auto_register_is_noop(self, wireguard_config, mock_opnsense):
        config = wireguard_config.model_copy(update={"auto_register_peers": False})

        assert WireGuardService(config, mock_opnsense).register_peer("alice", "NEWKEY", 0) is False

        mock_opnsense.search_peer_by_tunnel_address.assert_not_called()

    def test_missing_client(self, wireguard_config):
        with pytest.raises(PeerRegistrationError, match="OPNsense client not configured"):
            WireGuardService(wireguard_config).register_peer("alice", "NEWKEY", 0)

    def test_invalid_index(self, wireguard_config, mock_opnsense):
        with pytest.raises(PeerRegistrationError, match="invalid user index 5"):
            WireGuardService(wireguard_config, mock_opnsense).register_peer("alice", "NEWKEY", 5)

    def test_no_preprovisioned_peer(self, wireguard_config, mock_opnsense):
        mock_opnsense.search_peer_by_tunnel_address.return_value = None

        with pytest.raises(PeerRegistrationError, match="no pre-provisioned peer") as exc_info:
            WireGuardService(wireguard_config, mock_opnsense).register_peer("alice", "NEWKEY", 0)

        assert not isinstance(exc_info.value, PeerVerificationError)
        mock_opnsense.update_peer.assert_not_called()
        mock_opnsense.create_peer.assert_not_called()

    def test_search_failure(self, wireguard_config, mock_opnsense):
        mock_opnsense.search_peer_by_tunnel_address.side_effect = OPNsenseAPIError("timeout")

        with pytest.raises(PeerRegistrationError, match="failed to search peer"):
            WireGuardService(wireguard_config, mock_opnsense).register_peer("alice", "NEWKEY", 0)

    def test_update_failure(self, wireguard_config, mock_opnsense):
        mock_opnsense.search_peer_by_tunnel_address.return_value = peer()
        mock_opnsense.update_peer.side_effect = OPNsenseAPIError("validation errors")

        with pytest.raises(PeerRegistrationError, match="failed to update peer u-1") as exc_info:
            WireGuardService(wireguard_config, mock_opnsense).register_peer("alice", "NEWKEY", 0)

        assert not isinstance(exc_info.value, PeerVerificationError)

    def test_key_mismatch_after_update(self, wireguard_config, mock_opnsense):
        mock_opnsense.search_peer_by_tunnel_address.side_effect = [peer(), peer(pubkey="OLDKEY")]

        with pytest.raises(PeerVerificationError, match="peer key mismatch"):
            WireGuardService(wireguard_config, mock_opnsense).register_peer("alice", "NEWKEY", 0)

    def test_peer_disappeared_after_update(self, wireguard_config, mock_opnsense):
        mock_opnsense.search_peer_by_tunnel_address.side_effect = [peer(), None]

        with pytest.raises(PeerVerificationError, match="disappeared after update"):
            WireGuardService(wireguard_config, mock_opnsense).register_peer("alice", "NEWKEY", 0)

    def test_verify_search_failure_is_not_a_mismatch(self, wireguard_config, mock_opnsense):
        mock_opnsense.search_peer_by_tunnel_address.side_effect = [peer(), OPNsenseAPIError("reset")]

        with pytest.raises(PeerRegistrationError, match="failed to verify peer") as exc_info:
            WireGuardService(wireguard_config, mock_opnsense).register_peer("alice", "NEWKEY", 0)

        assert not isinstance(exc_info.value, PeerVerificationError)
