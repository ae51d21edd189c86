"""Tests for redeem.py: dispatch, batch isolation and pacing."""

import logging
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from conftest import COND_A, COND_B, make_pending, make_position

from pmarket.classifier import classify as classify_condition
from pmarket.contracts import (
    CTF_ADDRESS,
    INDEX_SETS,
    NEG_RISK_ADAPTER,
    PARENT_COLLECTION_ID,
    compute_position_id,
)
from pmarket.errors import ClassificationError, PositionFetchError, TransactionFailed, WalletNotInitialized
from pmarket.models import RedemptionPath
from pmarket.redeem import ensure_operator_approval, redeem_all


def _source(positions):
    src = MagicMock()
    src.get_positions.return_value = positions
    return src


def _sent_functions(chain):
    return [c.args[2] for c in chain.send.call_args_list]


class TestRedeemAll:
    def test_no_redeemable_positions(self, chain, cfg):
        classify = MagicMock()
        summary = redeem_all(chain, _source([make_position(redeemable=False)]), cfg,
                             classify=classify, sleep=MagicMock())

        assert (summary.redeemed, summary.total) == (0, 0)
        classify.assert_not_called()
        chain.send.assert_not_called()

    def test_fetches_positions_for_wallet(self, chain, cfg):
        src = _source([])
        redeem_all(chain, src, cfg, classify=MagicMock(), sleep=MagicMock())
        src.get_positions.assert_called_once_with(chain.address)

    def test_standard_redemption(self, chain, cfg):
        classify = MagicMock(return_value=RedemptionPath.STANDARD)
        positions = [make_position(condition_id=COND_A, size=Decimal("20"), asset="777")]

        summary = redeem_all(chain, _source(positions), cfg, classify=classify, sleep=MagicMock())

        classify.assert_called_once_with(chain, COND_A, "777", 1)
        assert _sent_functions(chain) == ["redeemPositions"]
        call = chain.send.call_args
        assert call.args[0] == CTF_ADDRESS
        assert call.args[3][1:] == [PARENT_COLLECTION_ID, bytes.fromhex("11" * 32), INDEX_SETS]
        assert call.args[4].gas_limit == cfg.redeem_gas_limit
        assert (summary.redeemed, summary.total) == (1, 1)

    def test_adapter_redemption_amounts(self, chain, cfg):
        classify = MagicMock(return_value=RedemptionPath.ADAPTER_MEDIATED)
        positions = [make_position(condition_id=COND_A, outcome="Yes", size=Decimal("15"))]

        summary = redeem_all(chain, _source(positions), cfg, classify=classify, sleep=MagicMock())

        call = chain.send.call_args
        assert call.args[0] == NEG_RISK_ADAPTER
        assert call.args[2] == "redeemPositions"
        assert call.args[3] == [bytes.fromhex("11" * 32), [15_000000, 0]]
        assert summary.redeemed == 1

    def test_adapter_redemption_no_only(self, chain, cfg):
        classify = MagicMock(return_value=RedemptionPath.ADAPTER_MEDIATED)
        positions = [make_position(outcome="No", size=Decimal("25"), asset="5")]

        redeem_all(chain, _source(positions), cfg, classify=classify, sleep=MagicMock())

        classify.assert_called_once_with(chain, COND_A, "5", 2)
        assert chain.send.call_args.args[3][1] == [0, 25_000000]

    def test_yes_and_no_redeemed_in_one_transaction(self, chain, cfg):
        classify = MagicMock(return_value=RedemptionPath.ADAPTER_MEDIATED)
        positions = [
            make_position(outcome="Yes", size=Decimal("10")),
            make_position(outcome="No", size=Decimal("5")),
        ]
        summary = redeem_all(chain, _source(positions), cfg, classify=classify, sleep=MagicMock())

        assert _sent_functions(chain) == ["redeemPositions"]
        assert chain.send.call_args.args[3][1] == [10_000000, 5_000000]
        assert summary.total == 1

    def test_operator_approval_sent_before_adapter_redeem(self, chain, cfg):
        chain.call.return_value = False
        classify = MagicMock(return_value=RedemptionPath.ADAPTER_MEDIATED)
        approval = make_pending("0xapprove")
        redeem = make_pending("0xredeem")
        chain.send.side_effect = [approval, redeem]

        summary = redeem_all(chain, _source([make_position()]), cfg, classify=classify, sleep=MagicMock())

        assert _sent_functions(chain) == ["setApprovalForAll", "redeemPositions"]
        assert chain.send.call_args_list[0].args[0] == CTF_ADDRESS
        assert chain.send.call_args_list[0].args[3][1] is True
        approval.wait.assert_called_once()
        assert summary.redeemed == 1

    def test_failed_operator_approval_skips_redeem(self, chain, cfg):
        chain.call.return_value = False
        approval = make_pending("0xapprove")
        approval.wait.side_effect = TransactionFailed("setApprovalForAll reverted: 0xapprove")
        chain.send.side_effect = [approval]
        classify = MagicMock(return_value=RedemptionPath.ADAPTER_MEDIATED)

        summary = redeem_all(chain, _source([make_position()]), cfg, classify=classify, sleep=MagicMock())

        assert _sent_functions(chain) == ["setApprovalForAll"]
        assert (summary.redeemed, summary.total) == (0, 1)

    def test_two_conditions_classified_twice(self, chain, cfg):
        classify = MagicMock(return_value=RedemptionPath.ADAPTER_MEDIATED)
        positions = [
            make_position(condition_id=COND_A, title="Market A", size=Decimal("15")),
            make_position(condition_id=COND_B, title="Market B", size=Decimal("5")),
        ]
        summary = redeem_all(chain, _source(positions), cfg, classify=classify, sleep=MagicMock())

        assert classify.call_count == 2
        assert (summary.redeemed, summary.total) == (2, 2)

    def test_classification_failure_does_not_abort_batch(self, chain, cfg, caplog):
        classify = MagicMock(side_effect=[
            ClassificationError("RPC rate limit"),
            RedemptionPath.STANDARD,
        ])
        positions = [
            make_position(condition_id=COND_A, title="Failing Market"),
            make_position(condition_id=COND_B, title="OK Market"),
        ]
        with caplog.at_level(logging.ERROR, logger="pm.redeem"):
            summary = redeem_all(chain, _source(positions), cfg, classify=classify, sleep=MagicMock())

        assert classify.call_count == 2
        assert (summary.redeemed, summary.total) == (1, 2)
        assert summary.failures == ((COND_A, "RPC rate limit"),)
        assert "Failed to redeem: RPC rate limit" in caplog.text

    def test_reverted_redemption_continues(self, chain, cfg, caplog):
        classify = MagicMock(return_value=RedemptionPath.STANDARD)
        failing = make_pending("0xfail")
        failing.wait.side_effect = TransactionFailed("redeem:ctf reverted: 0xfail")
        chain.send.side_effect = [failing, make_pending("0xok")]
        positions = [make_position(condition_id=COND_A), make_position(condition_id=COND_B)]

        with caplog.at_level(logging.ERROR, logger="pm.redeem"):
            summary = redeem_all(chain, _source(positions), cfg, classify=classify, sleep=MagicMock())

        assert chain.send.call_count == 2
        assert (summary.redeemed, summary.total) == (1, 2)
        assert "Failed to redeem: redeem:ctf reverted: 0xfail" in caplog.text

    def test_classification_failure_sends_nothing(self, chain, cfg):
        classify = MagicMock(side_effect=ClassificationError("RPC rate limit"))
        summary = redeem_all(chain, _source([make_position()]), cfg, classify=classify, sleep=MagicMock())

        chain.send.assert_not_called()
        assert (summary.redeemed, summary.total) == (0, 1)

    def test_pacing_after_each_successful_unit(self, chain, cfg):
        sleep = MagicMock()
        classify = MagicMock(return_value=RedemptionPath.STANDARD)
        positions = [make_position(condition_id=COND_A), make_position(condition_id=COND_B)]

        redeem_all(chain, _source(positions), cfg, classify=classify, sleep=sleep)

        assert [c.args[0] for c in sleep.call_args_list] == [5.0, 5.0]

    def test_no_pacing_for_single_unit(self, chain, cfg):
        sleep = MagicMock()
        classify = MagicMock(return_value=RedemptionPath.STANDARD)
        redeem_all(chain, _source([make_position()]), cfg, classify=classify, sleep=sleep)
        sleep.assert_not_called()

    def test_no_pacing_after_failed_unit(self, chain, cfg):
        sleep = MagicMock()
        classify = MagicMock(side_effect=[ClassificationError("boom"), RedemptionPath.STANDARD])
        positions = [make_position(condition_id=COND_A), make_position(condition_id=COND_B)]

        redeem_all(chain, _source(positions), cfg, classify=classify, sleep=sleep)

        sleep.assert_called_once_with(5.0)

    def test_position_fetch_failure_is_fatal(self, chain, cfg):
        src = MagicMock()
        src.get_positions.side_effect = PositionFetchError("Failed to fetch positions: 503")
        with pytest.raises(PositionFetchError):
            redeem_all(chain, src, cfg, classify=MagicMock(), sleep=MagicMock())

    def test_missing_wallet_is_fatal(self, cfg):
        with pytest.raises(WalletNotInitialized):
            redeem_all(None, _source([]), cfg)

    def test_on_grouped_called_before_redeeming(self, chain, cfg):
        seen = []
        classify = MagicMock(return_value=RedemptionPath.STANDARD)
        redeem_all(chain, _source([make_position()]), cfg, classify=classify,
                   sleep=MagicMock(), on_grouped=lambda g: seen.append((list(g), chain.send.call_count)))
        assert seen == [([COND_A], 0)]


class TestOperatorApproval:
    def test_skips_when_already_approved(self, chain, cfg):
        chain.call.return_value = True
        assert ensure_operator_approval(chain, cfg) is False
        chain.send.assert_not_called()
        args = chain.call.call_args.args
        assert args[2] == "isApprovedForAll"
        assert args[3][0] == chain.address

    def test_sends_approval_when_missing(self, chain, cfg):
        chain.call.return_value = False
        assert ensure_operator_approval(chain, cfg) is True
        call = chain.send.call_args
        assert call.args[2] == "setApprovalForAll"
        assert call.args[4].gas_limit == cfg.operator_approval_gas_limit


COLLECTION_SLOT_0 = b"\x01" * 32
COLLECTION_SLOT_1 = b"\x02" * 32


def _ctf_reads():
    """chain.call double: getCollectionId answers per index set, operator approved."""
    def call(address, abi, fn_name, args=()):
        if fn_name == "getCollectionId":
            return COLLECTION_SLOT_0 if args[2] == 1 else COLLECTION_SLOT_1
        return True
    return call


class TestOutcomeIndexRouting:
    """Real classifier: the API outcome index, not the label, picks the index set."""

    def _targets(self, chain):
        return [(c.args[0], c.args[2]) for c in chain.send.call_args_list]

    def test_up_token_redeems_through_ctf(self, chain, cfg):
        chain.call.side_effect = _ctf_reads()
        up = make_position(outcome="Up", outcome_index=0,
                           asset=str(compute_position_id(COLLECTION_SLOT_0)))

        summary = redeem_all(chain, _source([up]), cfg, classify=classify_condition, sleep=MagicMock())

        assert self._targets(chain) == [(CTF_ADDRESS, "redeemPositions")]
        assert chain.call.call_args_list[0].args[3][2] == 1
        assert summary.redeemed == 1

    def test_down_token_redeems_through_ctf(self, chain, cfg):
        chain.call.side_effect = _ctf_reads()
        down = make_position(outcome="Down", outcome_index=1,
                             asset=str(compute_position_id(COLLECTION_SLOT_1)))

        redeem_all(chain, _source([down]), cfg, classify=classify_condition, sleep=MagicMock())

        assert self._targets(chain) == [(CTF_ADDRESS, "redeemPositions")]
        assert chain.call.call_args_list[0].args[3][2] == 2

    def test_wrapped_collateral_yes_goes_to_adapter(self, chain, cfg):
        chain.call.side_effect = _ctf_reads()
        wrapped = compute_position_id(COLLECTION_SLOT_0, collateral="0x" + "3a" * 20)
        yes = make_position(outcome="Yes", outcome_index=0, asset=str(wrapped), size=Decimal("4"))

        redeem_all(chain, _source([yes]), cfg, classify=classify_condition, sleep=MagicMock())

        assert self._targets(chain) == [(NEG_RISK_ADAPTER, "redeemPositions")]
        assert chain.send.call_args.args[3][1] == [4_000000, 0]


class TestProgressReporting:
    def test_events_in_order(self, chain, cfg):
        events = []
        classify = MagicMock(side_effect=[ClassificationError("RPC rate limit"), RedemptionPath.STANDARD])
        positions = [make_position(condition_id=COND_A, title="A"), make_position(condition_id=COND_B, title="B")]

        redeem_all(chain, _source(positions), cfg, classify=classify, sleep=MagicMock(),
                   on_progress=lambda event, unit, detail: events.append((event, unit.title, detail)))

        assert events == [
            ("redeeming", "A", ""),
            ("failed", "A", "RPC rate limit"),
            ("redeeming", "B", ""),
            ("classified", "B", "standard"),
            ("redeemed", "B", "0x" + "1".zfill(64)),
        ]

    def test_writes_nothing_to_stdout(self, chain, cfg, capsys):
        classify = MagicMock(side_effect=[ClassificationError("boom"), RedemptionPath.ADAPTER_MEDIATED])
        positions = [make_position(condition_id=COND_A), make_position(condition_id=COND_B)]

        redeem_all(chain, _source(positions), cfg, classify=classify, sleep=MagicMock())

        assert capsys.readouterr().out == ""
