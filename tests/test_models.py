"""
Tests for the record types and the address/ABI helpers
"""

import pytest

from fee_indexer.errors import MalformedEvent
from fee_indexer.helpers import decode_fee_data, is_valid_address, normalize_address, to_hex
from fee_indexer.models import FeeEvent, ScanProgress


def test_progress_seed():
    p = ScanProgress.seed("polygon", 70_000_000, now=1)

    assert p.last_scanned_block == 69_999_999
    assert p.total_events_found == 0


def test_progress_advanced_is_pure_and_monotonic():
    p = ScanProgress("polygon", 100, 1, total_events_found=2, total_blocks_scanned=10)

    nxt = p.advanced(90, events=3, blocks=5, now=2)

    assert nxt.last_scanned_block == 100
    assert nxt.total_events_found == 5
    assert nxt.total_blocks_scanned == 15
    assert nxt.last_scan_time == 2
    # the old record is untouched
    assert p.total_events_found == 2


def test_fee_event_totals():
    ev = FeeEvent(token="0x1", integrator="0x2", integrator_fee=str(10**18), lifi_fee="1",
                  block_number=1, transaction_hash="0xaa", log_index=0)

    assert ev.total_fee() == str(10**18 + 1)
    assert ev.is_high_value()
    assert not ev.is_high_value(threshold=10**19)
    assert ev.key == ("0xaa", 0)


def test_normalize_address():
    assert normalize_address("0xBD6C7B0D2F68C2B7805D88388319CFB6ECB50EA9") == \
        "0xbd6c7b0d2f68c2b7805d88388319cfb6ecb50ea9"
    assert is_valid_address("0xbd6c7b0d2f68c2b7805d88388319cfb6ecb50ea9")
    assert not is_valid_address("0x123")
    assert not is_valid_address(None)


def test_to_hex():
    assert to_hex(b"\x01\x02") == "0x0102"
    assert to_hex(255) == "0xff"
    assert to_hex("abcd") == "0xabcd"
    assert to_hex(None) is None


def test_decode_fee_data():
    data = "0x" + f"{7:064x}{2**255:064x}"

    assert decode_fee_data(data) == (7, 2**255)

    with pytest.raises(MalformedEvent):
        decode_fee_data("0x" + "00" * 40)
