"""Core engine and CLI for ``wb-query``."""
