"""
SafeRoute: real-time proximity alerts for ride and trip safety.
"""

__version__ = "0.1.0"
