"""
eext - rebuilds upstream sources into modified SRPMs and binary RPMs
"""

__version__ = "0.1.0"
