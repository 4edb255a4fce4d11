"""
py-townsim: settlement economy and research-prioritization engine.
"""

__version__ = "0.1.0"
