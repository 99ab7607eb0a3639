"""
Gateway Deployment

Builds a complete gateway inside one ContractHost from a GatewayConfig:

    host
     ├── CommandProcessor      (operator SignerRegistry, TokenDeployer)
     ├── GovernanceDispatcher  (TimelockProposals, governance VoteLedger)
     └── Multisig              (its own VoteLedger)

The dispatcher is installed as the processor's governance, so governance
proposals can freeze tokens and adjust mint limits.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from .auth import Multisig, SignerRegistry, VoteLedger
from .config import GatewayConfig
from .gateway import CommandProcessor, TokenDeployer
from .governance import GovernanceDispatcher
from .host import ContractHost
from .logger import get_logger, set_log_level

logger = get_logger(__name__)


@dataclass
class GatewayDeployment:
    config: GatewayConfig
    host: ContractHost
    gateway: CommandProcessor
    governance: GovernanceDispatcher
    multisig: Multisig

    @property
    def operators(self) -> SignerRegistry:
        return self.gateway.operators


def deploy_gateway(
    operators: Sequence[str],
    operator_threshold: int,
    signers: Sequence[str],
    signer_threshold: int,
    operator_weights: Optional[Sequence[int]] = None,
    multisig_signers: Optional[Sequence[str]] = None,
    multisig_threshold: Optional[int] = None,
    config: Optional[GatewayConfig] = None,
    host: Optional[ContractHost] = None,
) -> GatewayDeployment:
    """
    Deploy and wire every gateway component.

    Args:
        operators: Initial operator accounts (sorted ascending)
        operator_threshold: Weight required to accept a batch
        signers: Initial governance signers (weight 1 each)
        signer_threshold: Votes required for multisig proposals
        operator_weights: Operator weights, 1 each when omitted
        multisig_signers: Signers of the stand-alone Multisig, defaults to *signers*
        multisig_threshold: Threshold of the stand-alone Multisig
        config: Configuration; validated before use
        host: Existing host to deploy into

    Raises:
        ConfigurationError: config is invalid
        InvalidSignersError: an initial signer set is invalid
    """
    config = config or GatewayConfig()
    config.validate()
    set_log_level(config.logging.level)
    host = host or ContractHost()
    window = config.auth.retention_window

    operator_registry = SignerRegistry(retention_window=window, name="operators")
    operator_registry.rotate(operators, operator_threshold, operator_weights)

    gateway = CommandProcessor(
        host,
        config.gateway.address,
        operators=operator_registry,
        deployer=TokenDeployer(host, config.gateway.token_deployer),
        chain_id=config.gateway.chain_id,
    )

    governance_signers = SignerRegistry(retention_window=window, name="governance", unique_sets=False)
    governance_signers.rotate(signers, signer_threshold)
    governance = GovernanceDispatcher(
        host,
        config.governance.contract,
        gateway=gateway,
        ledger=VoteLedger(governance_signers),
        governance_chain=config.governance.chain,
        governance_address=config.governance.address,
        minimum_delay=config.governance.minimum_time_delay,
    )
    gateway.set_governance(governance.address)

    multisig_registry = SignerRegistry(retention_window=window, name="multisig", unique_sets=False)
    multisig_registry.rotate(
        multisig_signers if multisig_signers is not None else signers,
        multisig_threshold if multisig_threshold is not None else signer_threshold,
    )
    multisig = Multisig(host, config.governance.multisig, VoteLedger(multisig_registry))

    logger.info(
        f"Gateway deployed on chain {gateway.chain_id}: gateway {gateway.address}, "
        f"governance {governance.address}, multisig {multisig.address}"
    )
    return GatewayDeployment(
        config=config,
        host=host,
        gateway=gateway,
        governance=governance,
        multisig=multisig,
    )
