"""
hangoutfinder - find time windows where every participant is free.
"""

__version__ = "0.1.0"
