"""Tests for the last-mint pointer file."""

import json

import pytest
from solders.keypair import Keypair

from ticketmint.core.errors import InvalidIdentity
from ticketmint.core.state import LastMintPointer


def test_absent_pointer_reads_none(tmp_path) -> None:
    assert LastMintPointer(tmp_path / "last_mint.json").read() is None


def test_write_overwrites(tmp_path) -> None:
    pointer = LastMintPointer(tmp_path / "last_mint.json")
    first, second = Keypair().pubkey(), Keypair().pubkey()
    pointer.write(first)
    pointer.write(second)
    assert json.loads(pointer.path.read_text()) == {"mint": str(second)}
    assert pointer.read() == second


def test_write_failure_is_not_fatal(tmp_path) -> None:
    pointer = LastMintPointer(tmp_path / "missing-dir" / "last_mint.json")
    pointer.write(Keypair().pubkey())
    assert pointer.read() is None


@pytest.mark.parametrize("content", ["{not json", "{}", '{"mint": "bogus"}'])
def test_bad_pointer_raises(tmp_path, content) -> None:
    path = tmp_path / "last_mint.json"
    path.write_text(content)
    with pytest.raises(InvalidIdentity):
        LastMintPointer(path).read()
