"""
Governance Test Suite

Coverage:
  - TimelockProposals: eta clamping, readiness, cancel, clear-before-call,
    failed execution
  - GovernanceDispatcher: governance source checks, gateway approval
    consumption, schedule / cancel / approve / cancel-approval commands,
    timelocked execution, multisig-gated execution, signer rotation
  - end to end: a governance proposal freezing a gateway token
"""

import os
import sys

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from xgate.auth import NotSignerError
from xgate.config import GatewayConfig
from xgate.constants import ZERO_HASH
from xgate.crypto import PrivateKey, encode_function_call, keccak256
from xgate.deployment import deploy_gateway
from xgate.gateway import (
    Batch,
    NotGovernanceError,
    approve_contract_call_params,
    deploy_token_params,
    mint_token_params,
    sign_batch,
)
from xgate.governance import (
    GovernanceCommand,
    InvalidCommandError,
    InvalidTimeLockError,
    NotApprovedError,
    NotReadyError,
    TimelockProposals,
    encode_governance_payload,
    proposal_hash,
)
from xgate.host import ContractHost, ExecutionFailedError


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

DELAY = 100
NOW = 1_000_000
TARGET = PrivateKey.from_int(0xD001).address
OWNER = PrivateKey.from_int(0xD002).address
CALL = encode_function_call("setValue(uint256)", 42)


def make_keys(count, start=1):
    keys = [PrivateKey.from_int(start + i) for i in range(count)]
    return sorted(keys, key=lambda k: int(k.address, 16))


class Recorder:
    """Contract recording every call it receives."""

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def on_call(self, sender, call_data, value):
        if self.fail:
            raise RuntimeError("target reverted")
        self.calls.append((sender, call_data, value))
        return b""


class Env:
    """Full deployment plus a recording target contract."""

    def __init__(self):
        config = GatewayConfig()
        config.governance.minimum_time_delay = DELAY
        self.operator_keys = make_keys(3, start=0x100)
        self.signers = [k.address for k in make_keys(3, start=0x200)]
        self.d = deploy_gateway(
            operators=[k.address for k in self.operator_keys],
            operator_threshold=2,
            signers=self.signers,
            signer_threshold=2,
            config=config,
        )
        self.gov_chain = config.governance.chain
        self.gov_address = config.governance.address
        self.target = Recorder()
        self.d.host.deploy(TARGET, self.target)

    @property
    def governance(self):
        return self.d.governance

    def relay(self, commands):
        batch = Batch(chain_id=self.d.gateway.chain_id)
        ids = [batch.add(name, params) for name, params in commands]
        result = self.d.gateway.execute(sign_batch(batch.encode(), self.operator_keys[:2]))
        assert result.executed == ids
        return ids

    def approve(self, payload):
        """Have the gateway approve a governance message; returns its command id."""
        (cid,) = self.relay([("approveContractCall", approve_contract_call_params(
            self.gov_chain, self.gov_address, self.governance.address, keccak256(payload),
        ))])
        return cid

    def govern(self, command, target=TARGET, call_data=CALL, native_value=0, eta=0, now=NOW):
        payload = encode_governance_payload(command, target, call_data, native_value, eta)
        cid = self.approve(payload)
        self.governance.execute(cid, self.gov_chain, self.gov_address, payload, now=now)
        return cid


@pytest.fixture
def env():
    return Env()


# ══════════════════════════════════════════════════════════════════════
#  TIMELOCK
# ══════════════════════════════════════════════════════════════════════

@pytest.fixture
def timelock():
    host = ContractHost()
    host.deploy(TARGET, Recorder())
    return TimelockProposals(host, OWNER, minimum_delay=DELAY)


class TestTimelock:

    def test_early_eta_clamped(self, timelock):
        h = proposal_hash(TARGET, CALL)
        assert timelock.schedule(h, 5, now=NOW) == NOW + DELAY
        assert timelock.get_eta(h) == NOW + DELAY

    def test_late_eta_kept(self, timelock):
        h = proposal_hash(TARGET, CALL)
        assert timelock.schedule(h, NOW + 10 * DELAY, now=NOW) == NOW + 10 * DELAY

    def test_zero_hash(self, timelock):
        with pytest.raises(InvalidTimeLockError):
            timelock.schedule(ZERO_HASH, 0, now=NOW)

    def test_not_scheduled(self, timelock):
        with pytest.raises(NotReadyError):
            timelock.execute(proposal_hash(TARGET, CALL), TARGET, CALL, now=NOW)

    def test_ready_only_at_eta(self, timelock):
        h = proposal_hash(TARGET, CALL)
        eta = timelock.schedule(h, 0, now=NOW)
        with pytest.raises(NotReadyError):
            timelock.execute(h, TARGET, CALL, now=eta - 1)
        timelock.execute(h, TARGET, CALL, now=eta)
        assert timelock.get_eta(h) == 0
        with pytest.raises(NotReadyError):
            timelock.execute(h, TARGET, CALL, now=eta + 1)

    def test_cancel_is_idempotent(self, timelock):
        h = proposal_hash(TARGET, CALL)
        timelock.schedule(h, 0, now=NOW)
        timelock.cancel(h)
        timelock.cancel(h)
        assert timelock.get_eta(h) == 0
        with pytest.raises(NotReadyError):
            timelock.execute(h, TARGET, CALL, now=NOW + DELAY)

    def test_failed_call_leaves_eta_cleared(self):
        host = ContractHost()
        host.deploy(TARGET, Recorder(fail=True))
        tl = TimelockProposals(host, OWNER, minimum_delay=DELAY)
        h = proposal_hash(TARGET, CALL)
        eta = tl.schedule(h, 0, now=NOW)
        with pytest.raises(ExecutionFailedError):
            tl.execute(h, TARGET, CALL, now=eta)
        assert tl.get_eta(h) == 0

    def test_hash_covers_value(self):
        assert proposal_hash(TARGET, CALL, 0) != proposal_hash(TARGET, CALL, 1)


# ══════════════════════════════════════════════════════════════════════
#  DISPATCHER
# ══════════════════════════════════════════════════════════════════════

class TestGovernanceMessages:

    def test_wrong_source_chain(self, env):
        payload = encode_governance_payload(GovernanceCommand.SCHEDULE_TIME_LOCK_PROPOSAL, TARGET, CALL)
        cid = env.approve(payload)
        with pytest.raises(NotGovernanceError):
            env.governance.execute(cid, "Ethereum", env.gov_address, payload, now=NOW)

    def test_wrong_source_address(self, env):
        payload = encode_governance_payload(GovernanceCommand.SCHEDULE_TIME_LOCK_PROPOSAL, TARGET, CALL)
        cid = env.approve(payload)
        with pytest.raises(NotGovernanceError):
            env.governance.execute(cid, env.gov_chain, "someone-else", payload, now=NOW)

    def test_not_approved(self, env):
        payload = encode_governance_payload(GovernanceCommand.SCHEDULE_TIME_LOCK_PROPOSAL, TARGET, CALL)
        with pytest.raises(NotApprovedError):
            env.governance.execute(b"\x01" * 32, env.gov_chain, env.gov_address, payload, now=NOW)

    def test_approval_consumed(self, env):
        payload = encode_governance_payload(GovernanceCommand.SCHEDULE_TIME_LOCK_PROPOSAL, TARGET, CALL)
        cid = env.approve(payload)
        env.governance.execute(cid, env.gov_chain, env.gov_address, payload, now=NOW)
        with pytest.raises(NotApprovedError):
            env.governance.execute(cid, env.gov_chain, env.gov_address, payload, now=NOW)

    def test_unknown_command_keeps_approval(self, env):
        payload = encode_governance_payload(7, TARGET, CALL)
        cid = env.approve(payload)
        with pytest.raises(InvalidCommandError):
            env.governance.execute(cid, env.gov_chain, env.gov_address, payload, now=NOW)
        assert env.d.gateway.is_contract_call_approved(
            cid, env.gov_chain, env.gov_address, env.governance.address, keccak256(payload),
        )

    def test_undecodable_payload(self, env):
        payload = b"\x00" * 10
        cid = env.approve(payload)
        with pytest.raises(InvalidCommandError):
            env.governance.execute(cid, env.gov_chain, env.gov_address, payload, now=NOW)


class TestTimelockProposals:

    def test_schedule_and_execute(self, env):
        env.govern(GovernanceCommand.SCHEDULE_TIME_LOCK_PROPOSAL, eta=0)
        eta = env.governance.get_proposal_eta(TARGET, CALL)
        assert eta == NOW + DELAY

        with pytest.raises(NotReadyError):
            env.governance.execute_proposal(TARGET, CALL, now=eta - 1)
        env.governance.execute_proposal(TARGET, CALL, now=eta)

        assert env.target.calls == [(env.governance.address, CALL, 0)]
        assert env.governance.get_proposal_eta(TARGET, CALL) == 0
        kinds = [e.kind for e in env.governance.events]
        assert kinds == ["ProposalScheduled", "ProposalExecuted"]

    def test_cancel(self, env):
        env.govern(GovernanceCommand.SCHEDULE_TIME_LOCK_PROPOSAL)
        env.govern(GovernanceCommand.CANCEL_TIME_LOCK_PROPOSAL)
        assert env.governance.get_proposal_eta(TARGET, CALL) == 0
        with pytest.raises(NotReadyError):
            env.governance.execute_proposal(TARGET, CALL, now=NOW + DELAY)

    def test_native_value(self, env):
        env.d.host.fund(env.governance.address, 50)
        env.govern(GovernanceCommand.SCHEDULE_TIME_LOCK_PROPOSAL, native_value=20)
        env.governance.execute_proposal(TARGET, CALL, native_value=20, now=NOW + DELAY)
        assert env.d.host.balance_of(TARGET) == 20
        assert env.d.host.balance_of(env.governance.address) == 30

    def test_freeze_token_end_to_end(self, env):
        env.relay([("deployToken", deploy_token_params("Wrapped Ether", "WETH", 18, 0))])
        gateway = env.d.gateway
        freeze = encode_function_call("setTokenFrozen(string,bool)", "WETH", True)

        env.govern(GovernanceCommand.SCHEDULE_TIME_LOCK_PROPOSAL, target=gateway.address, call_data=freeze)
        env.governance.execute_proposal(gateway.address, freeze, now=NOW + DELAY)
        assert gateway.is_token_frozen("WETH")

        batch = Batch(chain_id=gateway.chain_id)
        cid = batch.add("mintToken", mint_token_params("WETH", TARGET, 1))
        result = gateway.execute(sign_batch(batch.encode(), env.operator_keys[:2]))
        assert result.failed == [cid]


class TestMultisigProposals:

    def test_approve_and_execute(self, env):
        env.govern(GovernanceCommand.APPROVE_MULTISIG_PROPOSAL)
        assert env.governance.is_multisig_proposal_approved(TARGET, CALL)

        a, b, _ = env.signers
        first = env.governance.execute_multisig_proposal(a, TARGET, CALL)
        assert first.executed is False
        assert env.target.calls == []

        second = env.governance.execute_multisig_proposal(b, TARGET, CALL)
        assert second.executed is True
        assert env.target.calls == [(env.governance.address, CALL, 0)]
        assert not env.governance.is_multisig_proposal_approved(TARGET, CALL)

    def test_approval_is_one_shot(self, env):
        env.govern(GovernanceCommand.APPROVE_MULTISIG_PROPOSAL)
        a, b, _ = env.signers
        env.governance.execute_multisig_proposal(a, TARGET, CALL)
        env.governance.execute_multisig_proposal(b, TARGET, CALL)

        env.governance.execute_multisig_proposal(a, TARGET, CALL)
        with pytest.raises(NotApprovedError):
            env.governance.execute_multisig_proposal(b, TARGET, CALL)
        assert len(env.target.calls) == 1

    def test_independent_of_timelock(self, env):
        env.govern(GovernanceCommand.APPROVE_MULTISIG_PROPOSAL)
        assert env.governance.get_proposal_eta(TARGET, CALL) == 0

    def test_non_signer(self, env):
        env.govern(GovernanceCommand.APPROVE_MULTISIG_PROPOSAL)
        with pytest.raises(NotSignerError):
            env.governance.execute_multisig_proposal(TARGET, TARGET, CALL)

    def test_cancel_approval(self, env):
        env.govern(GovernanceCommand.APPROVE_MULTISIG_PROPOSAL)
        env.govern(GovernanceCommand.CANCEL_MULTISIG_APPROVAL)
        assert not env.governance.is_multisig_proposal_approved(TARGET, CALL)

        a, b, _ = env.signers
        env.governance.execute_multisig_proposal(a, TARGET, CALL)
        with pytest.raises(NotApprovedError):
            env.governance.execute_multisig_proposal(b, TARGET, CALL)

    def test_failed_call_requires_new_approval(self, env):
        failing = PrivateKey.from_int(0xD003).address
        env.d.host.deploy(failing, Recorder(fail=True))
        env.govern(GovernanceCommand.APPROVE_MULTISIG_PROPOSAL, target=failing)

        a, b, _ = env.signers
        env.governance.execute_multisig_proposal(a, failing, CALL)
        with pytest.raises(ExecutionFailedError):
            env.governance.execute_multisig_proposal(b, failing, CALL)
        assert not env.governance.is_multisig_proposal_approved(failing, CALL)

    def test_rotate_signers(self, env):
        a, b, _ = env.signers
        new = [k.address for k in make_keys(2, start=0x300)]
        env.governance.rotate_signers(a, new, 1)
        env.governance.rotate_signers(b, new, 1)
        assert env.governance.signer_epoch == 2
        assert env.governance.signer_accounts(2) == new
        assert env.governance.signer_threshold(2) == 1
