"""
Options Desk backend.

FastAPI service behind the options trading dashboard: user accounts and
invite-gated registration, paper trading with synthetic fills, strategy and
position bookkeeping, stored backtest results and an admin console.
"""

__version__ = "1.0.0"
