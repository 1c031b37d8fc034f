"""Veilstream: privacy-preserving LLM proxy with live reasoning status."""

__version__ = "0.1.0"
