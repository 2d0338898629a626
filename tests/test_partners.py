"""Partner adapters: parsing, auth and normalization without storage."""

import pytest

from rewards_ledger.core.exceptions import (
    InvalidAmountError,
    InvalidAuthError,
    MethodNotAllowedError,
    MissingParameterError,
    StatusIgnored,
)
from rewards_ledger.core.security import md5_hex
from rewards_ledger.partners import build_adapters
from rewards_ledger.partners.adgem import AdGemAdapter
from rewards_ledger.partners.ayet import AyetAdapter
from rewards_ledger.partners.base import first_param, param_list, parse_amount
from rewards_ledger.partners.bitlabs import BitLabsAdapter
from rewards_ledger.partners.cpx import CPXAdapter
from rewards_ledger.partners.kiwiwall import KiwiWallAdapter, expected_signature
from rewards_ledger.partners.magic_receipts import MagicReceiptsAdapter
from rewards_ledger.partners.myleads import MyLeadsAdapter, classify_status
from rewards_ledger.partners.revu import RevUAdapter

SECRET = "s3cret"


def test_first_param_last_repeated_value_wins():
    assert first_param({"a": ["1", "2"]}, "a") == "2"
    assert first_param({"a": "", "b": " x "}, "a", "b") == "x"
    assert first_param({}, "a") == ""


def test_param_list_splits_commas():
    assert param_list({"sig": ["a,b", "c"]}, "sig") == ["a", "b", "c"]


@pytest.mark.parametrize("raw", ["", "abc", "0", "-1", "nan", "inf"])
def test_parse_amount_rejects(raw):
    with pytest.raises(InvalidAmountError):
        parse_amount(raw)


def test_parse_amount_cents():
    assert parse_amount("250", cents=True) == 2.5
    with pytest.raises(InvalidAmountError):
        parse_amount("0.2", cents=True)


def test_build_adapters_registers_every_partner():
    from rewards_ledger.core.config import get_settings
    names = set(build_adapters(get_settings()))
    assert names == {
        "adgem",
        "kiwiwall",
        "revu",
        "cpx",
        "magic_receipts",
        "ayet",
        "myleads",
        "bitlabs_survey",
        "bitlabs_receipt",
        "bitlabs_game",
    }


class TestAdGem:
    adapter = AdGemAdapter(SECRET)
    base = {"secret": SECRET, "uid": "u1", "offer_id": "o1", "amount": "150", "transaction_id": "t1"}

    def test_credit(self):
        e = self.adapter.parse("GET", self.base)
        assert (e.partner, e.uid, e.external_tx_id, e.gross_usd, e.is_reversal) == ("adgem", "u1", "t1", 1.5, False)

    def test_reversal_status(self):
        assert self.adapter.parse("POST", {**self.base, "status": "chargeback"}).is_reversal

    def test_bad_secret(self):
        with pytest.raises(InvalidAuthError):
            self.adapter.parse("GET", {**self.base, "secret": "nope"})

    def test_missing_tx(self):
        params = dict(self.base)
        del params["transaction_id"]
        with pytest.raises(MissingParameterError):
            self.adapter.parse("GET", params)

    def test_method_checked_before_auth(self):
        with pytest.raises(MethodNotAllowedError):
            self.adapter.parse("PUT", {})

    def test_unset_server_secret_rejects_everything(self):
        with pytest.raises(InvalidAuthError):
            AdGemAdapter("").parse("GET", {**self.base, "secret": ""})


class TestKiwiWall:
    adapter = KiwiWallAdapter(SECRET)

    def params(self, **overrides):
        p = {"sub_id": "u1", "amount": "0.80", "tx": "k1", "offer_id": "o1", "status": "1"}
        p["signature"] = expected_signature("u1", "0.80", SECRET)
        p.update(overrides)
        return p

    def test_signature_ok(self):
        e = self.adapter.parse("GET", self.params())
        assert e.gross_usd == 0.8
        assert e.external_tx_id == "k1"

    def test_signature_case_insensitive_and_listed(self):
        sig = expected_signature("u1", "0.80", SECRET).upper()
        e = self.adapter.parse("GET", self.params(signature=["garbage", sig]))
        assert e.uid == "u1"

    def test_raw_secret_accepted(self):
        assert self.adapter.parse("GET", self.params(signature=SECRET)).uid == "u1"

    def test_bad_signature(self):
        with pytest.raises(InvalidAuthError):
            self.adapter.parse("GET", self.params(signature="deadbeef"))

    def test_chargeback(self):
        assert self.adapter.parse("GET", self.params(status="2")).is_reversal

    def test_other_status_acknowledged_with_one(self):
        with pytest.raises(StatusIgnored) as exc:
            self.adapter.parse("GET", self.params(status="3"))
        assert exc.value.message == "1"


class TestRevU:
    adapter = RevUAdapter(SECRET)

    def test_cents_and_tx(self):
        e = self.adapter.parse("GET", {"key": SECRET, "uid": "u1", "reward": "125", "actionid": "a1"})
        assert e.gross_usd == 1.25
        assert e.external_tx_id == "a1"
        assert not e.tx_id_synthesized

    def test_test_form_synthesizes_tx(self):
        e = self.adapter.parse("GET", {"token": SECRET, "sid2": "u9", "currency": "100", "sid3": "x"})
        assert e.uid == "u9"
        assert e.tx_id_synthesized
        assert e.external_tx_id.startswith("revu_test_")
        assert e.metadata == {"sid3": "x"}
        assert e.offer_id == "unknown"


class TestCPX:
    adapter = CPXAdapter(SECRET)

    def params(self, **overrides):
        p = {"user_id": "u1", "amount_usd": "0.75", "amount_local": "75", "trans_id": "c1", "status": "1"}
        p["hash"] = md5_hex(f"c1-{SECRET}")
        p.update(overrides)
        return p

    def test_credit_uses_usd_amount(self):
        e = self.adapter.parse("GET", self.params())
        assert e.gross_usd == 0.75
        assert e.metadata["amount_local"] == "75"
        assert self.adapter.require_existing_user

    def test_goal_suffix(self):
        assert self.adapter.parse("GET", self.params(goal_id="3")).external_tx_id == "c1_goal_3"

    def test_missing_params_checked_before_hash(self):
        with pytest.raises(MissingParameterError):
            self.adapter.parse("GET", {"user_id": "u1", "hash": "bad"})

    def test_bad_hash(self):
        with pytest.raises(InvalidAuthError):
            self.adapter.parse("GET", self.params(hash="bad"))

    def test_reversal_and_ignored_status(self):
        assert self.adapter.parse("GET", self.params(status="2")).is_reversal
        with pytest.raises(StatusIgnored):
            self.adapter.parse("GET", self.params(status="5"))


def test_magic_receipts_uses_receipt_as_offer():
    e = MagicReceiptsAdapter(SECRET).parse(
        "POST", {"secret": SECRET, "uid": "u1", "receipt_id": "r1", "payout": "0.10", "tx": "m1"}
    )
    assert e.offer_id == "r1"
    assert e.gross_usd == 0.1


class TestAyet:
    adapter = AyetAdapter(SECRET)
    base = {"key": SECRET, "uid": "u1", "payout": "1.00", "clickid": "y1"}

    def test_missing_status_means_approved(self):
        e = self.adapter.parse("GET", self.base)
        assert not e.is_reversal
        assert e.external_tx_id == "y1"

    def test_reversal(self):
        assert self.adapter.parse("GET", {**self.base, "status": "reversed"}).is_reversal

    def test_pending_ignored(self):
        with pytest.raises(StatusIgnored):
            self.adapter.parse("GET", {**self.base, "status": "pending"})


class TestMyLeads:
    adapter = MyLeadsAdapter(SECRET)

    @pytest.mark.parametrize(
        "status,outcome",
        [("approved", "credit"), ("", "credit"), ("rejected", "reversal"), ("-4", "reversal"), ("hold", "pending"), ("0", "reversal"), ("weird", "ignored")],
    )
    def test_classify_status(self, status, outcome):
        assert classify_status(status) == outcome

    def test_secret_optional(self):
        e = self.adapter.parse("GET", {"player_id": "u1", "transaction_id": "ml1", "payout": "2", "program_id": "p7"})
        assert e.gross_usd == 2.0
        assert e.metadata["program_id"] == "p7"
        assert e.offer_id == "p7"

    def test_wrong_secret_rejected_when_sent(self):
        with pytest.raises(InvalidAuthError):
            self.adapter.parse("GET", {"secret": "bad", "player_id": "u1", "transaction_id": "ml1", "payout": "2"})

    def test_first_finite_payout(self):
        e = self.adapter.parse(
            "GET", {"ml_sub1": "u1", "transaction_id": "ml2", "payout_decimal": "x", "payout": "", "virtual_amount": "3.5"}
        )
        assert e.gross_usd == 3.5

    def test_pending_is_acknowledged(self):
        with pytest.raises(StatusIgnored):
            self.adapter.parse("GET", {"uid": "u1", "transaction_id": "ml3", "payout": "1", "status": "pending"})


def test_bitlabs_synthesizes_tx_from_offer():
    adapter = BitLabsAdapter(SECRET, kind="receipt")
    e = adapter.parse("GET", {"secret": SECRET, "uid": "u1", "offer_id": "b1", "payout": "0.40"})
    assert adapter.name == "bitlabs_receipt"
    assert e.partner == "bitlabs_receipt"
    assert e.external_tx_id == "u1:b1"
    assert e.tx_id_synthesized
