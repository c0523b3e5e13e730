"""
Gatekeeper: time-limited session whitelist engine.
"""

__version__ = "0.3.0"
