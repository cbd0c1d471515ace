"""
Scripts package for the Directory Operator.

This package contains command-line entry points organized by functionality.

Subpackages:
- directory_operator: kopf handlers and the operator daemon
"""

__version__ = "0.1.0"
