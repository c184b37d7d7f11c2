"""Tests for password and WireGuard key generation."""
import base64

import pytest

from labprovider.services.credentials import (
    DEFAULT_PASSWORD_LENGTH,
    PASSWORD_CHARS,
    clamp_private_key,
    derive_public_key,
    generate_keypair,
    generate_password,
)


class TestGeneratePassword:

    def test_default_length(self):
        assert len(generate_password()) == DEFAULT_PASSWORD_LENGTH

    @pytest.mark.parametrize("length", [0, -5])
    def test_non_positive_length_falls_back_to_default(self, length):
        assert len(generate_password(length)) == DEFAULT_PASSWORD_LENGTH

    def test_custom_length(self):
        assert len(generate_password(40)) == 40

    def test_only_allowed_characters(self):
        password = generate_password(200)

        assert set(password) <= set(PASSWORD_CHARS)

    def test_passwords_differ(self):
        assert generate_password() != generate_password()


class TestKeypair:

    def test_keys_are_32_byte_base64(self):
        private_key, public_key = generate_keypair()

        assert len(base64.b64decode(private_key)) == 32
        assert len(base64.b64decode(public_key)) == 32

    def test_private_key_is_clamped(self):
        private_key, _ = generate_keypair()
        raw = base64.b64decode(private_key)

        assert raw[0] & 7 == 0
        assert raw[31] & 128 == 0
        assert raw[31] & 64 == 64

    def test_public_key_matches_private_key(self):
        private_key, public_key = generate_keypair()

        assert derive_public_key(private_key) == public_key

    def test_keypairs_are_unique(self):
        assert generate_keypair()[0] != generate_keypair()[0]

    def test_clamp_private_key(self):
        clamped = clamp_private_key(b"\xff" * 32)

        assert clamped[0] == 0xF8
        assert clamped[31] == 0x7F
        assert clamped[1:31] == b"\xff" * 30

    def test_clamp_rejects_wrong_length(self):
        with pytest.raises(ValueError):
            clamp_private_key(b"\x00" * 31)

    def test_derive_public_key_rejects_short_key(self):
        with pytest.raises(ValueError):
            derive_public_key(base64.b64encode(b"\x01" * 16).decode())
