"""
ShareStake - a staking-rewards and withdrawal-penalty engine.

Key features:
- Quantity and time bonuses applied before share conversion
- Monotonically ratcheting share price
- Tiered early-closure and late-closure penalty schedules
- Pool-proportional yield accrual with a privileged daily top-up
- Atomic operations against a fallible custody collaborator
"""

__version__ = "0.4.0"
__all__ = [
    "bonus",
    "shares",
    "reward_pool",
    "staking",
    "penalty",
    "engine",
    "custody",
    "errors",
    "invariants",
    "precision",
    "config",
    "logging_config",
    "storage",
    "api",
]
