"""
collekt - token collection orchestration and caching service for Tezos.
"""

__version__ = "1.0.0"
