"""
Command-line client for the Polymarket exchange.

Contains:
- fees.py / pacing.py: fee schedule estimation and RPC pacing
- allowance.py: USDC approvals for the exchange contracts
- classifier.py / positions.py / redeem.py: redemption of resolved markets
- polymarket.py / cache.py: exchange API client and local market cache
- cli.py / commands.py: command dispatcher
"""

__version__ = "0.4.0"
