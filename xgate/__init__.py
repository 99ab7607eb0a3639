"""
XGate Cross-Chain Gateway Package

Core imports are lazily loaded so importing a submodule does not pull in
the whole gateway. For direct module access, import from submodules:

    from xgate.auth import SignerRegistry, VoteLedger
    from xgate.gateway import CommandProcessor, sign_batch
    from xgate.governance import GovernanceDispatcher
"""

__version__ = "0.1.0"


# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    """Lazy module loading."""
    if name == 'CommandProcessor':
        from .gateway import CommandProcessor
        return CommandProcessor
    elif name == 'GovernanceDispatcher':
        from .governance import GovernanceDispatcher
        return GovernanceDispatcher
    elif name == 'SignerRegistry':
        from .auth import SignerRegistry
        return SignerRegistry
    elif name == 'deploy_gateway':
        from .deployment import deploy_gateway
        return deploy_gateway
    raise AttributeError(f"module 'xgate' has no attribute {name!r}")

__all__ = ['CommandProcessor', 'GovernanceDispatcher', 'SignerRegistry', 'deploy_gateway']
