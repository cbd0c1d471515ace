"""
Directory Operator
==================

Reconciles LDAP directory state from Kubernetes custom resources.

This package provides adapters, reconcilers and controllers for working with:
- LDAPServer records (directory connections and their health)
- LDAPUser records (user entries and their group memberships)
- LDAPGroup records (group entries)

For more information, see the README.md file.
"""

__version__ = "0.1.0"
