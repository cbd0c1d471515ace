"""
Directory Facade

Bundles one directory session with the entry reconciler and the membership
synchronizer so a reconciliation pass can open everything it needs with a
single call and release it with a single ``with`` block.
"""

import logging
from typing import Callable, Optional

from ..adapters.directory_session import DirectorySession
from ..builders import entry_builder
from ..models.resources import ConnectionSpec
from ..reconcilers.entry_reconciler import EntryReconciler
from ..reconcilers.membership_synchronizer import MembershipSynchronizer

logger = logging.getLogger(__name__)


class DirectoryFacade:
    """
    Orchestrated access to one directory for the duration of a pass.

    Exposes the pieces as attributes:
    - ``session``: the bound DirectorySession
    - ``entries``: EntryReconciler for create/update/delete and read-back
    - ``memberships``: MembershipSynchronizer for principal group membership
    """

    def __init__(
        self,
        session: DirectorySession,
        base_dn: str,
        placeholder_member: str = entry_builder.DEFAULT_PLACEHOLDER_MEMBER,
    ) -> None:
        self.session = session
        self.base_dn = base_dn
        self.entries = EntryReconciler(session, placeholder_member)
        self.memberships = MembershipSynchronizer(session, base_dn)

    @classmethod
    def open(
        cls,
        spec: ConnectionSpec,
        credential: str,
        ca_certificate: Optional[str] = None,
        placeholder_member: str = entry_builder.DEFAULT_PLACEHOLDER_MEMBER,
        session_factory: Optional[Callable[..., DirectorySession]] = None,
    ) -> "DirectoryFacade":
        """
        Open a session for ``spec`` and wrap it.

        Raises:
            ConnectError: If the session cannot be opened and bound
        """
        factory = session_factory or DirectorySession.open
        session = factory(spec, credential, ca_certificate)
        return cls(session, spec.base_dn, placeholder_member)

    def principal_dn(self, username: str, ou: str) -> str:
        return entry_builder.build_principal_dn(username, ou, self.base_dn)

    def group_dn(self, group_name: str, ou: str) -> str:
        return entry_builder.build_group_dn(group_name, ou, self.base_dn)

    def probe(self) -> None:
        """
        Verify the session can read the base DN.

        Raises:
            DirectoryError: If the base-scoped test search fails
        """
        self.session.search(self.base_dn, scope="base", attributes=["objectClass"], size_limit=1)
        logger.debug(f"Probe search succeeded at {self.base_dn}")

    def close(self) -> None:
        self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - closes the session."""
        self.close()
