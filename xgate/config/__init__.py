"""
XGate Configuration

Loads config.toml at startup. Environment variables override TOML values.
"""

from .loader import (
    AuthSectionConfig,
    GatewayConfig,
    GatewaySectionConfig,
    GovernanceSectionConfig,
    LoggingSectionConfig,
    load_config,
)

__all__ = [
    "AuthSectionConfig",
    "GatewayConfig",
    "GatewaySectionConfig",
    "GovernanceSectionConfig",
    "LoggingSectionConfig",
    "load_config",
]
