"""
Pump Bundler
Multi-wallet pump.fun buy/sell bundler with checkpointed resumption
"""

__version__ = "1.0.0"
