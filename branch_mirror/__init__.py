"""
Branch Mirror — Mirror branch lifecycle events into Azure DevOps.
"""

__version__ = "0.1.0"
