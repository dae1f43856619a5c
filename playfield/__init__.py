"""
playfield
Match, cricket scoring and tournament backend.
"""

__version__ = "1.0.0"
