"""Local multi-role node cluster launcher."""

__version__ = '0.1.0'
