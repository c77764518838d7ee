"""Beacon chain node building blocks: messages, codecs, fork choice, attestation pool and RPC."""

__version__ = "0.1.0"