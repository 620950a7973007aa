"""Tunnel building blocks: frame crypto, Salamander obfuscation, FEC, DNS and config handling, and an adaptive governor."""

__version__ = "0.1.0"