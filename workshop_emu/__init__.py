"""
workshop-emu: subscribe to, download and install externally hosted workshop items.
"""

__version__ = "0.1.0"
