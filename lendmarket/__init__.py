"""
Lending Market Deployment Package

Core imports are lazily loaded so the CLI and the sandbox do not pull in
web3 unless a JSON-RPC ledger is requested.
For direct module access, import from submodules:

    from lendmarket.market.orchestrator import MarketOrchestrator
    from lendmarket.ledger.sandbox import SandboxLedger
    from lendmarket.exceptions import PreconditionMissing
"""

__version__ = "0.1.0"


# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    """Lazy module loading."""
    if name == 'MarketOrchestrator':
        from .market.orchestrator import MarketOrchestrator
        return MarketOrchestrator
    elif name == 'MarketReport':
        from .market.report import MarketReport
        return MarketReport
    elif name == 'Deployer':
        from .market.deployer import Deployer
        return Deployer
    elif name == 'SandboxLedger':
        from .ledger.sandbox import SandboxLedger
        return SandboxLedger
    elif name == 'Web3Ledger':
        from .ledger.web3_ledger import Web3Ledger
        return Web3Ledger
    elif name == 'main':
        from .cli.market import main
        return main
    raise AttributeError(f"module 'lendmarket' has no attribute {name!r}")

__all__ = ['MarketOrchestrator', 'MarketReport', 'Deployer', 'SandboxLedger', 'Web3Ledger', 'main']
