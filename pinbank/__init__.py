"""
PIN Bank

A single-process console banking system with PIN/password protected
accounts, soft deletion, and whole-table binary snapshot persistence.
"""

__version__ = "1.0.0"
