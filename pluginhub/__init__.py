"""
PluginHub - multi-tenant plugin platform
"""

__version__ = "1.0.0"
