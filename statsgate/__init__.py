"""
statsgate - resilient client for the PUBG statistics API with inbound
admission control.
"""

__version__ = "0.1.0"
