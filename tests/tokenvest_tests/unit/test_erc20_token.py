"""
Tests for the ERC20 token used as the ledger's asset and its custody adapter.
"""

import pytest

from tokenvest.core.contracts.erc20 import (
    ZERO_ADDRESS,
    AssetTransfer,
    ERC20Token,
    TokenCustody,
    TokenError,
)

from vesting_helpers import ALICE, BOB, LEDGER, OWNER


@pytest.fixture
def token():
    token = ERC20Token(name="Test Token", symbol="TST", owner=OWNER, max_supply=10_000)
    token.mint(OWNER, OWNER, 1_000)
    return token


class TestTransfers:
    def test_transfer_moves_balance(self, token):
        assert token.transfer(OWNER, ALICE, 300) is True
        assert token.balance_of(OWNER) == 700
        assert token.balance_of(ALICE) == 300

    def test_transfer_emits_event(self, token):
        token.transfer(OWNER, ALICE, 5)
        event = token.events[-1]
        assert (event.event_type, event.from_address, event.to_address, event.value) == (
            "Transfer",
            OWNER,
            ALICE,
            5,
        )

    def test_addresses_are_case_insensitive(self, token):
        token.transfer(OWNER.upper().replace("0X", "0x"), ALICE.upper(), 10)
        assert token.balance_of(ALICE) == 10

    def test_insufficient_balance(self, token):
        with pytest.raises(TokenError, match="exceeds balance"):
            token.transfer(ALICE, BOB, 1)

    def test_zero_address_recipient(self, token):
        with pytest.raises(TokenError, match="zero address"):
            token.transfer(OWNER, ZERO_ADDRESS, 1)

    def test_negative_amount(self, token):
        with pytest.raises(TokenError):
            token.transfer(OWNER, ALICE, -1)

    def test_paused_token_rejects_transfers(self, token):
        token.pause(OWNER)
        with pytest.raises(TokenError, match="paused"):
            token.transfer(OWNER, ALICE, 1)
        token.unpause(OWNER)
        assert token.transfer(OWNER, ALICE, 1)


class TestMinting:
    def test_only_owner_mints(self, token):
        with pytest.raises(TokenError, match="not owner"):
            token.mint(ALICE, ALICE, 1)

    def test_max_supply_enforced(self, token):
        with pytest.raises(TokenError, match="max supply"):
            token.mint(OWNER, ALICE, 9_001)
        token.mint(OWNER, ALICE, 9_000)
        assert token.total_supply == 10_000

    def test_only_owner_pauses(self, token):
        with pytest.raises(TokenError):
            token.pause(ALICE)
        assert token.paused is False


def test_serialization_round_trip(token):
    token.transfer(OWNER, ALICE, 250)
    restored = ERC20Token.from_dict(token.to_dict())

    assert restored.address == token.address
    assert restored.owner == OWNER
    assert restored.total_supply == 1_000
    assert restored.balance_of(ALICE) == 250
    assert restored.max_supply == 10_000


class TestTokenCustody:
    def test_transfers_out_of_holder(self, token):
        token.transfer(OWNER, LEDGER, 400)
        custody = TokenCustody(token, LEDGER.upper().replace("0X", "0x"))

        assert custody.holder == LEDGER
        assert custody.address == token.address
        assert custody.transfer(ALICE, 150) is True
        assert custody.balance_of(LEDGER) == 250
        assert token.balance_of(ALICE) == 150

    def test_propagates_token_errors(self, token):
        custody = TokenCustody(token, LEDGER)
        with pytest.raises(TokenError):
            custody.transfer(ALICE, 1)

    def test_satisfies_asset_protocol(self, token):
        assert isinstance(TokenCustody(token, LEDGER), AssetTransfer)
