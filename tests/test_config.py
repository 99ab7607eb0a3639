"""
Configuration and Logging Test Suite

Coverage:
  - config.toml loading, defaults for missing files and sections
  - XGATE_* environment overrides and XGATE_CONFIG resolution
  - validation errors
  - log sanitisation and format validation
"""

import logging
import os
import sys

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from xgate.config import GatewayConfig, load_config
from xgate.constants import GOVERNANCE_MINIMUM_TIME_DELAY, SIGNER_RETENTION_WINDOW, parse_bool
from xgate.exceptions import ConfigurationError
from xgate.logger import LogManager, TerminalSafeFormatter, get_logger


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

SAMPLE = """
[gateway]
chain_id = 137
address = "0x1111111111111111111111111111111111111111"

[auth]
retention_window = 4

[governance]
chain = "Governance"
address = "gov-contract"
minimum_time_delay = 60

[logging]
level = "DEBUG"
"""

ENV_VARS = (
    "XGATE_CHAIN_ID",
    "XGATE_GATEWAY_ADDRESS",
    "XGATE_RETENTION_WINDOW",
    "XGATE_GOVERNANCE_CHAIN",
    "XGATE_GOVERNANCE_ADDRESS",
    "XGATE_GOVERNANCE_CONTRACT",
    "XGATE_MINIMUM_TIME_DELAY",
    "XGATE_LOG_LEVEL",
    "XGATE_CONFIG",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def write_config(tmp_path, text=SAMPLE):
    path = tmp_path / "config.toml"
    path.write_text(text)
    return str(path)


# ══════════════════════════════════════════════════════════════════════
#  LOADING
# ══════════════════════════════════════════════════════════════════════

class TestLoadConfig:

    def test_sections(self, tmp_path):
        cfg = load_config(write_config(tmp_path))
        assert cfg.gateway.chain_id == 137
        assert cfg.gateway.address == "0x1111111111111111111111111111111111111111"
        assert cfg.auth.retention_window == 4
        assert cfg.governance.chain == "Governance"
        assert cfg.governance.address == "gov-contract"
        assert cfg.governance.minimum_time_delay == 60
        assert cfg.logging.level == "DEBUG"
        assert cfg.validate() is True

    def test_missing_sections_use_defaults(self, tmp_path):
        cfg = load_config(write_config(tmp_path, "[gateway]\nchain_id = 5\n"))
        assert cfg.gateway.chain_id == 5
        assert cfg.auth.retention_window == SIGNER_RETENTION_WINDOW
        assert cfg.governance.minimum_time_delay == GOVERNANCE_MINIMUM_TIME_DELAY

    def test_missing_file_uses_defaults(self, tmp_path):
        cfg = load_config(str(tmp_path / "absent.toml"))
        assert cfg.to_dict() == GatewayConfig().to_dict()

    def test_env_selects_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XGATE_CONFIG", write_config(tmp_path))
        assert load_config().gateway.chain_id == 137

    def test_invalid_toml(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(write_config(tmp_path, "[gateway\nchain_id = "))


class TestEnvOverrides:

    def test_overrides_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XGATE_CHAIN_ID", "10")
        monkeypatch.setenv("XGATE_RETENTION_WINDOW", "8")
        monkeypatch.setenv("XGATE_GOVERNANCE_CHAIN", "Other")
        monkeypatch.setenv("XGATE_MINIMUM_TIME_DELAY", "5")
        monkeypatch.setenv("XGATE_LOG_LEVEL", "WARNING")
        cfg = load_config(write_config(tmp_path))
        assert cfg.gateway.chain_id == 10
        assert cfg.auth.retention_window == 8
        assert cfg.governance.chain == "Other"
        assert cfg.governance.minimum_time_delay == 5
        assert cfg.logging.level == "WARNING"

    def test_overrides_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XGATE_GATEWAY_ADDRESS", "0x2222222222222222222222222222222222222222")
        cfg = load_config(str(tmp_path / "absent.toml"))
        assert cfg.gateway.address == "0x2222222222222222222222222222222222222222"


class TestValidation:

    @pytest.mark.parametrize("mutate", [
        lambda c: setattr(c.gateway, "chain_id", 0),
        lambda c: setattr(c.gateway, "address", "not-an-address"),
        lambda c: setattr(c.auth, "retention_window", 0),
        lambda c: setattr(c.governance, "chain", ""),
        lambda c: setattr(c.governance, "minimum_time_delay", -1),
        lambda c: setattr(c.logging, "level", "LOUD"),
    ])
    def test_rejects(self, mutate):
        cfg = GatewayConfig()
        mutate(cfg)
        with pytest.raises(ConfigurationError):
            cfg.validate()

    def test_defaults_valid(self):
        assert GatewayConfig().validate() is True


# ══════════════════════════════════════════════════════════════════════
#  CONSTANTS AND LOGGING
# ══════════════════════════════════════════════════════════════════════

class TestParseBool:

    def test_literals(self):
        assert parse_bool(" true ") is True
        assert parse_bool("FALSE") is False

    def test_other_strings_unchanged(self):
        assert parse_bool("yes") == "yes"
        assert parse_bool("") == ""


class TestLogging:

    def test_sanitize_strips_ansi_and_control(self):
        raw = "token \x1b[31mWETH\x1b[0m\r\x07 minted"
        assert TerminalSafeFormatter.sanitize(raw) == "token WETH minted"

    def test_sanitize_keeps_newlines(self):
        assert TerminalSafeFormatter.sanitize("a\nb\tc") == "a\nb\tc"

    def test_invalid_format_falls_back(self):
        fallback = LogManager.validate_log_format("(message)s broken")
        assert fallback == LogManager.validate_log_format("")

    def test_valid_format_kept(self):
        fmt = "%(levelname)s %(message)s"
        assert LogManager.validate_log_format(fmt) == fmt

    def test_singleton(self):
        assert LogManager() is LogManager()
        assert LogManager().is_configured

    def test_get_logger(self):
        log = get_logger("xgate.tests")
        assert isinstance(log, logging.Logger)
        assert log.name == "xgate.tests"
