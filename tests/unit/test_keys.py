"""Tests for keypair loading and public-key parsing."""

import json

import pytest
from solders.keypair import Keypair

from ticketmint.core.errors import InvalidIdentity
from ticketmint.core.keys import load_keypair, parse_pubkey


class TestParsePubkey:
    def test_valid_string(self) -> None:
        kp = Keypair()
        assert parse_pubkey(str(kp.pubkey())) == kp.pubkey()

    def test_pubkey_passes_through(self) -> None:
        pk = Keypair().pubkey()
        assert parse_pubkey(pk) is pk

    @pytest.mark.parametrize("value", ["", None, "not-a-key", "0OIl"])
    def test_malformed(self, value) -> None:
        with pytest.raises(InvalidIdentity) as exc_info:
            parse_pubkey(value)
        assert exc_info.value.code == 1002


class TestLoadKeypair:
    def test_reads_cli_format(self, tmp_path) -> None:
        kp = Keypair()
        path = tmp_path / "id.json"
        path.write_text(json.dumps(list(bytes(kp))))
        assert load_keypair(path).pubkey() == kp.pubkey()

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(InvalidIdentity, match="not found"):
            load_keypair(tmp_path / "nope.json")

    def test_garbage_file(self, tmp_path) -> None:
        path = tmp_path / "id.json"
        path.write_text("[1, 2, 3]")
        with pytest.raises(InvalidIdentity):
            load_keypair(path)
