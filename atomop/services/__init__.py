"""Services - on-chain collaborators."""

from atomop.services.chain import Web3Erc20, Web3PositionManager, build_web3, load_account

__all__ = ["Web3Erc20", "Web3PositionManager", "build_web3", "load_account"]
