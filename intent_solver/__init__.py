"""Cross-chain ERC-7683 intent solver.

Watches origin chains for opened orders, decides whether to fill them,
fills on the destination chains and claims the reward on the origin chain.
"""

__version__ = "0.1.0"
