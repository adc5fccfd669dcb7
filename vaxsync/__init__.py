"""
VaxSync
Barangay vaccine inventory accounting and NIP monthly reporting
"""

__version__ = "1.0.0"
