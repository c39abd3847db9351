"""
Runtime resource management module.

This module provides ResourceScope, which tracks temporary files created on a
device during an operation and removes them when the operation ends.
"""
