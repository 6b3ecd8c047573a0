"""
TodoForge
=========

Autonomous resolution of TODO comments in TypeScript and JavaScript code
bases, bounded by confidence thresholds, rate limits and session budgets.
"""

__version__ = "0.4.0"
