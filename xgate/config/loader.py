"""
XGate TOML Configuration Loader

Loads config.toml with environment variable overrides, one dataclass per
[section] (dataclass + from_dict + apply_env).

Environment variable mapping:
    [gateway] chain_id            → XGATE_CHAIN_ID
    [gateway] address             → XGATE_GATEWAY_ADDRESS
    [auth] retention_window       → XGATE_RETENTION_WINDOW
    [governance] chain            → XGATE_GOVERNANCE_CHAIN
    [governance] address          → XGATE_GOVERNANCE_ADDRESS
    [governance] contract         → XGATE_GOVERNANCE_CONTRACT
    [governance] minimum_time_delay → XGATE_MINIMUM_TIME_DELAY
    [logging] level               → XGATE_LOG_LEVEL

Signer keys never belong in this file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from eth_utils import is_address

from ..constants import (
    GOVERNANCE_MINIMUM_TIME_DELAY,
    LOG_LEVEL,
    SIGNER_RETENTION_WINDOW,
    XGATE_CHAIN_ID,
    XGATE_GOVERNANCE_ADDRESS,
    XGATE_GOVERNANCE_CHAIN,
)
from ..exceptions import ConfigurationError
from ..logger import get_logger

logger = get_logger(__name__)

DEFAULT_GATEWAY_ADDRESS = "0x4f4495243837681061c4743b74b3eedf548d56a5"
DEFAULT_DEPLOYER_ADDRESS = "0x00000000000000000000000000000000000de910"
DEFAULT_GOVERNANCE_CONTRACT = "0xfdf36a30070ea0241d69052ea85ff44ad0476a66"
DEFAULT_MULTISIG_ADDRESS = "0x00000000000000000000000000000000000a1517"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# ---------------------------------------------------------------------------
# Section dataclasses, one per [section] of config.example.toml
# ---------------------------------------------------------------------------


@dataclass
class GatewaySectionConfig:
    """[gateway] section."""
    chain_id: int = int(XGATE_CHAIN_ID)
    address: str = DEFAULT_GATEWAY_ADDRESS
    token_deployer: str = DEFAULT_DEPLOYER_ADDRESS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GatewaySectionConfig":
        return cls(
            chain_id=data.get("chain_id", int(XGATE_CHAIN_ID)),
            address=data.get("address", DEFAULT_GATEWAY_ADDRESS),
            token_deployer=data.get("token_deployer", DEFAULT_DEPLOYER_ADDRESS),
        )

    def apply_env(self) -> None:
        """Override from environment variables."""
        if v := os.environ.get("XGATE_CHAIN_ID"):
            self.chain_id = int(v)
        if v := os.environ.get("XGATE_GATEWAY_ADDRESS"):
            self.address = v


@dataclass
class AuthSectionConfig:
    """[auth] section."""
    retention_window: int = SIGNER_RETENTION_WINDOW

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthSectionConfig":
        return cls(retention_window=data.get("retention_window", SIGNER_RETENTION_WINDOW))

    def apply_env(self) -> None:
        if v := os.environ.get("XGATE_RETENTION_WINDOW"):
            self.retention_window = int(v)


@dataclass
class GovernanceSectionConfig:
    """[governance] section."""
    chain: str = str(XGATE_GOVERNANCE_CHAIN)
    address: str = str(XGATE_GOVERNANCE_ADDRESS)
    contract: str = DEFAULT_GOVERNANCE_CONTRACT
    multisig: str = DEFAULT_MULTISIG_ADDRESS
    minimum_time_delay: int = GOVERNANCE_MINIMUM_TIME_DELAY

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GovernanceSectionConfig":
        return cls(
            chain=data.get("chain", str(XGATE_GOVERNANCE_CHAIN)),
            address=data.get("address", str(XGATE_GOVERNANCE_ADDRESS)),
            contract=data.get("contract", DEFAULT_GOVERNANCE_CONTRACT),
            multisig=data.get("multisig", DEFAULT_MULTISIG_ADDRESS),
            minimum_time_delay=data.get("minimum_time_delay", GOVERNANCE_MINIMUM_TIME_DELAY),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("XGATE_GOVERNANCE_CHAIN"):
            self.chain = v
        if v := os.environ.get("XGATE_GOVERNANCE_ADDRESS"):
            self.address = v
        if v := os.environ.get("XGATE_GOVERNANCE_CONTRACT"):
            self.contract = v
        if v := os.environ.get("XGATE_MINIMUM_TIME_DELAY"):
            self.minimum_time_delay = int(v)


@dataclass
class LoggingSectionConfig:
    """[logging] section."""
    level: str = str(LOG_LEVEL)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingSectionConfig":
        return cls(level=data.get("level", str(LOG_LEVEL)))

    def apply_env(self) -> None:
        if v := os.environ.get("XGATE_LOG_LEVEL"):
            self.level = v


# -----------------------------------------------------------------------
# Top-level config
# -----------------------------------------------------------------------

@dataclass
class GatewayConfig:
    """
    Unified gateway configuration.

    Loads every section of config.toml and applies environment variable
    overrides.
    """
    gateway: GatewaySectionConfig = field(default_factory=GatewaySectionConfig)
    auth: AuthSectionConfig = field(default_factory=AuthSectionConfig)
    governance: GovernanceSectionConfig = field(default_factory=GovernanceSectionConfig)
    logging: LoggingSectionConfig = field(default_factory=LoggingSectionConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GatewayConfig":
        """Create GatewayConfig from a parsed TOML dict."""
        return cls(
            gateway=GatewaySectionConfig.from_dict(data.get("gateway", {})),
            auth=AuthSectionConfig.from_dict(data.get("auth", {})),
            governance=GovernanceSectionConfig.from_dict(data.get("governance", {})),
            logging=LoggingSectionConfig.from_dict(data.get("logging", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "GatewayConfig":
        """
        Load configuration from a TOML file.

        A missing file yields defaults (with env overrides applied).
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning(f"Config file not found: {config_path}, using defaults")
            cfg = cls()
            cfg.apply_env()
            return cfg

        with open(path, "rb") as f:
            try:
                raw = tomli.load(f)
            except tomli.TOMLDecodeError as e:
                raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.gateway.apply_env()
        self.auth.apply_env()
        self.governance.apply_env()
        self.logging.apply_env()

    def validate(self) -> bool:
        """
        Raises:
            ConfigurationError: on invalid config
        """
        if self.gateway.chain_id < 1:
            raise ConfigurationError("chain_id must be >= 1")
        for name, value in (
            ("gateway.address", self.gateway.address),
            ("gateway.token_deployer", self.gateway.token_deployer),
            ("governance.contract", self.governance.contract),
            ("governance.multisig", self.governance.multisig),
        ):
            if not is_address(value):
                raise ConfigurationError(f"{name} is not a valid address: {value}")
        if self.auth.retention_window < 1:
            raise ConfigurationError("retention_window must be >= 1")
        if not self.governance.chain or not self.governance.address:
            raise ConfigurationError("governance chain and address must be set")
        if self.governance.minimum_time_delay < 0:
            raise ConfigurationError("minimum_time_delay cannot be negative")
        if self.logging.level not in LOG_LEVELS:
            raise ConfigurationError(f"Invalid log level: {self.logging.level}")
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics, NOT for re-creating TOML)."""
        return {
            "gateway": {
                "chain_id": self.gateway.chain_id,
                "address": self.gateway.address,
                "token_deployer": self.gateway.token_deployer,
            },
            "auth": {
                "retention_window": self.auth.retention_window,
            },
            "governance": {
                "chain": self.governance.chain,
                "address": self.governance.address,
                "contract": self.governance.contract,
                "multisig": self.governance.multisig,
                "minimum_time_delay": self.governance.minimum_time_delay,
            },
            "logging": {
                "level": self.logging.level,
            },
        }


def load_config(path: Optional[str] = None) -> GatewayConfig:
    """
    Load gateway configuration.

    Resolution order:
        1. Explicit *path* argument
        2. XGATE_CONFIG env var
        3. ./config.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("XGATE_CONFIG", "config.toml")

    return GatewayConfig.from_file(path)
