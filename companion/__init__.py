"""
Desktop companion for a Clawdbot gateway
"""

__version__ = "1.0.0"
