"""
Scoped authorization and exclusive role assignment for squadron rosters.
"""

__version__ = "0.1.0"
