"""
Team & Bundle Wallet Tracker

Classifies the largest holders of an EVM token into behavioral roles:
- Deployer / team wallets
- Coordinated bundle wallets
- High-frequency MEV extractors
- Regular holders

then watches the flagged wallets and alerts when they sell.
"""

__version__ = "1.0.0"
