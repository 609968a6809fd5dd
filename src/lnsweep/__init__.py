"""
lnsweep: recovery of Lightning channel funds after a remote force close.
"""

__version__ = "0.1.0"
