"""
ObelixIA backend - goals, visits, inbox and admin engines for a banking CRM.
"""

try:
    from importlib.metadata import version

    __version__ = version("obelixia-backend")
except Exception:
    __version__ = "0.0.0"
