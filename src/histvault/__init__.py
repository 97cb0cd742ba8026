"""
histvault - shell history aggregation and search

Collects zsh extended-history files from many machines into one SQLite
store, searches it with full-text ranking and fzf, and turns plain-language
requests into shell commands with a confirm-to-cache loop.
"""

__version__ = "0.3.0"
