"""
Signer Registry Test Suite

Coverage:
  - signer set validation on rotation (empty, zero, unsorted, duplicate,
    weights, threshold)
  - epoch / hash bookkeeping and rotation events
  - weighted verification, most recent satisfied epoch wins
  - retention window: old epochs stop verifying after N rotations
"""

import os
import sys

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from xgate.auth import (
    DuplicateSignerError,
    DuplicateSignerSetError,
    InvalidSignersError,
    InvalidSignerThresholdError,
    SignerRegistry,
    SignerSet,
)
from xgate.constants import SIGNER_RETENTION_WINDOW, ZERO_ADDRESS
from xgate.crypto import MalformedSignatureError, PrivateKey, keccak256


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

def make_keys(count, start=1):
    """Deterministic keys sorted by address, as signer sets require."""
    keys = [PrivateKey.from_int(start + i) for i in range(count)]
    return sorted(keys, key=lambda k: int(k.address, 16))


def addresses(keys):
    return [k.address for k in keys]


def sign(keys, h):
    return [k.sign_msg_hash(h).to_bytes() for k in keys]


MSG = keccak256(b"batch")


@pytest.fixture
def abc():
    return make_keys(3, start=100)


@pytest.fixture
def registry(abc):
    reg = SignerRegistry()
    reg.rotate(addresses(abc), 2)
    return reg


# ══════════════════════════════════════════════════════════════════════
#  VALIDATION
# ══════════════════════════════════════════════════════════════════════

class TestSignerSetValidation:

    def test_empty(self):
        with pytest.raises(InvalidSignersError):
            SignerSet.create([], 1)

    def test_zero_address(self):
        with pytest.raises(InvalidSignersError):
            SignerSet.create([ZERO_ADDRESS], 1)

    def test_not_an_address(self):
        with pytest.raises(InvalidSignersError):
            SignerSet.create(["0x1234"], 1)

    def test_unsorted(self, abc):
        with pytest.raises(InvalidSignersError, match="ascending"):
            SignerSet.create(list(reversed(addresses(abc))), 1)

    def test_duplicate(self, abc):
        a = abc[0].address
        with pytest.raises(DuplicateSignerError):
            SignerSet.create([a, a], 1)

    def test_duplicate_is_invalid_signers(self):
        assert issubclass(DuplicateSignerError, InvalidSignersError)

    def test_threshold_zero(self, abc):
        with pytest.raises(InvalidSignerThresholdError):
            SignerSet.create(addresses(abc), 0)

    def test_threshold_above_total_weight(self, abc):
        with pytest.raises(InvalidSignerThresholdError):
            SignerSet.create(addresses(abc), 4)

    def test_threshold_counts_weights(self, abc):
        s = SignerSet.create(addresses(abc), 6, weights=[1, 2, 3])
        assert s.total_weight == 6

    def test_weight_count_mismatch(self, abc):
        with pytest.raises(InvalidSignersError):
            SignerSet.create(addresses(abc), 1, weights=[1, 1])

    def test_non_positive_weight(self, abc):
        with pytest.raises(InvalidSignersError):
            SignerSet.create(addresses(abc), 1, weights=[1, 0, 1])

    def test_lowercase_accounts_are_checksummed(self, abc):
        s = SignerSet.create([a.lower() for a in addresses(abc)], 1)
        assert list(s.accounts) == addresses(abc)


# ══════════════════════════════════════════════════════════════════════
#  ROTATION
# ══════════════════════════════════════════════════════════════════════

class TestRotation:

    def test_starts_empty(self):
        reg = SignerRegistry()
        assert reg.current_epoch == 0
        assert reg.signer_accounts(1) == []
        assert reg.signer_threshold(1) == 0

    def test_first_rotation_is_epoch_one(self, registry, abc):
        assert registry.current_epoch == 1
        assert registry.signer_accounts(1) == addresses(abc)
        assert registry.signer_threshold(1) == 2

    def test_hash_mapping(self, registry):
        h = registry.hash_for_epoch(1)
        assert len(h) == 32
        assert registry.epoch_for_hash(h) == 1

    def test_event_emitted(self, registry, abc):
        events = registry.events
        assert len(events) == 1
        assert events[0].epoch == 1
        assert events[0].to_dict()["threshold"] == 2

    def test_invalid_rotation_leaves_state(self, registry):
        with pytest.raises(InvalidSignersError):
            registry.rotate([], 1)
        assert registry.current_epoch == 1
        assert len(registry.events) == 1

    def test_reusing_signer_set_rejected(self, registry, abc):
        registry.rotate(addresses(make_keys(3, start=200)), 2)
        with pytest.raises(DuplicateSignerSetError):
            registry.rotate(addresses(abc), 2)

    def test_reusing_signer_set_allowed_when_not_unique(self, abc):
        reg = SignerRegistry(name="multisig", unique_sets=False)
        reg.rotate(addresses(abc), 2)
        reg.rotate(addresses(make_keys(3, start=200)), 2)
        assert reg.rotate(addresses(abc), 2) == 3
        assert reg.signer_accounts(3) == addresses(abc)

    def test_same_accounts_new_threshold_allowed(self, registry, abc):
        assert registry.rotate(addresses(abc), 3) == 2

    def test_is_signer(self, registry, abc):
        assert registry.is_signer(abc[0].address)
        assert not registry.is_signer(PrivateKey.from_int(999).address)


# ══════════════════════════════════════════════════════════════════════
#  VERIFICATION
# ══════════════════════════════════════════════════════════════════════

class TestVerification:

    def test_threshold_met(self, registry, abc):
        assert registry.verify(MSG, sign(abc[:2], MSG)) == 1

    def test_threshold_not_met(self, registry, abc):
        with pytest.raises(InvalidSignersError):
            registry.verify(MSG, sign(abc[:1], MSG))

    def test_outsiders_do_not_count(self, registry, abc):
        outsider = PrivateKey.from_int(999)
        with pytest.raises(InvalidSignersError):
            registry.verify(MSG, sign([abc[0], outsider], MSG))

    def test_duplicate_signature_rejected(self, registry, abc):
        sig = sign(abc[:1], MSG)[0]
        with pytest.raises(MalformedSignatureError):
            registry.verify(MSG, [sig, sig])

    def test_malformed_signature(self, registry, abc):
        with pytest.raises(MalformedSignatureError):
            registry.verify(MSG, [b"\x00" * 10])

    def test_signature_over_other_message(self, registry, abc):
        other = keccak256(b"other")
        with pytest.raises(InvalidSignersError):
            registry.verify(MSG, sign(abc[:2], other))

    def test_no_epochs(self, abc):
        with pytest.raises(InvalidSignersError):
            SignerRegistry().verify(MSG, sign(abc, MSG))

    def test_weighted(self, abc):
        reg = SignerRegistry()
        reg.rotate(addresses(abc), 4, weights=[1, 1, 3])
        with pytest.raises(InvalidSignersError):
            reg.verify(MSG, sign(abc[:2], MSG))
        assert reg.verify(MSG, sign([abc[0], abc[2]], MSG)) == 1

    def test_prefers_most_recent_epoch(self, registry, abc):
        registry.rotate(addresses(abc), 1)
        assert registry.verify(MSG, sign(abc[:2], MSG)) == 2


class TestRetentionWindow:

    def test_old_epoch_verifies_after_rotation(self, registry, abc):
        registry.rotate(addresses(make_keys(3, start=200)), 2)
        assert registry.current_epoch == 2
        assert registry.verify(MSG, sign(abc[:2], MSG)) == 1

    def test_old_epoch_expires(self, registry, abc):
        for i in range(SIGNER_RETENTION_WINDOW - 1):
            registry.rotate(addresses(make_keys(3, start=1000 + 10 * i)), 2)
        # epoch 1 is the oldest epoch still retained
        assert registry.retained_epochs()[-1] == 1
        assert registry.verify(MSG, sign(abc[:2], MSG)) == 1

        registry.rotate(addresses(make_keys(3, start=5000)), 2)
        assert 1 not in registry.retained_epochs()
        with pytest.raises(InvalidSignersError):
            registry.verify(MSG, sign(abc[:2], MSG))

    def test_retained_epochs_newest_first(self, registry):
        registry.rotate(addresses(make_keys(2, start=300)), 1)
        assert registry.retained_epochs() == [2, 1]

    def test_small_window(self, abc):
        reg = SignerRegistry(retention_window=1)
        reg.rotate(addresses(abc), 2)
        reg.rotate(addresses(make_keys(3, start=200)), 2)
        with pytest.raises(InvalidSignersError):
            reg.verify(MSG, sign(abc[:2], MSG))
