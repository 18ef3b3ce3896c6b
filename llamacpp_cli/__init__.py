"""Interactive command-line client for llama.cpp completion servers."""

__version__ = "0.1.0"
