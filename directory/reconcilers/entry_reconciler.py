import logging
from enum import Enum
from typing import List, Optional, Union

from ..adapters.directory_session import DirectorySession, get_attribute_values
from ..builders import entry_builder
from ..exceptions import NoSuchEntryError
from ..models.group_kind import MEMBERSHIP_ATTRIBUTES, GroupKind
from ..models.resources import GroupSpec, PrincipalSpec

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"


class EntryReconciler:
    """
    Idempotent create-or-update of a single directory entry.

    Existence is decided by a base-scoped search on the target DN. Absent
    entries are added with the full attribute set from the entry builder;
    present entries get a modify that replaces only the mutable fields.
    Running it twice against a correct entry sends a no-op replace, which
    the directory accepts.
    """

    def __init__(self, session: DirectorySession, placeholder_member: str = entry_builder.DEFAULT_PLACEHOLDER_MEMBER):
        self.session = session
        self.placeholder_member = placeholder_member

    def reconcile(
        self,
        target_dn: str,
        desired: Union[PrincipalSpec, GroupSpec],
        password: Optional[str] = None,
    ) -> ReconcileOutcome:
        """
        Make the entry at ``target_dn`` match ``desired``.

        Args:
            target_dn: Distinguished name of the entry
            desired: Principal or group desired state
            password: Principal password, used only when the entry is created

        Returns:
            ReconcileOutcome: CREATED or UPDATED

        Raises:
            DirectoryError: If the existence check, add or modify fails
        """
        if self.session.entry_exists(target_dn):
            logger.debug(f"Entry exists, updating: {target_dn}")
            self._update(target_dn, desired)
            return ReconcileOutcome.UPDATED

        logger.debug(f"Entry does not exist, creating: {target_dn}")
        self.session.add(target_dn, self._build_attributes(desired, password))
        return ReconcileOutcome.CREATED

    def _build_attributes(self, desired, password):
        if isinstance(desired, PrincipalSpec):
            return entry_builder.build_principal_attributes(desired, password)
        if isinstance(desired, GroupSpec):
            return entry_builder.build_group_attributes(desired, self.placeholder_member)
        raise TypeError(f"Unsupported desired state: {type(desired).__name__}")

    def _update(self, target_dn, desired) -> None:
        if isinstance(desired, PrincipalSpec):
            changes = entry_builder.build_principal_changes(desired)
        elif isinstance(desired, GroupSpec):
            changes = entry_builder.build_group_changes(desired)
        else:
            raise TypeError(f"Unsupported desired state: {type(desired).__name__}")

        if not changes:
            logger.info(f"No changes needed for {target_dn}")
            return
        self.session.modify(target_dn, changes)

    def delete(self, target_dn: str) -> bool:
        """
        Delete the entry at ``target_dn``.

        Returns:
            bool: True if an entry was deleted, False if it was already gone

        Raises:
            DirectoryError: If the delete fails for any other reason
        """
        try:
            self.session.delete(target_dn)
        except NoSuchEntryError:
            logger.info(f"Entry already absent: {target_dn}")
            return False
        return True

    def read_group_members(self, group_dn: str, kind: GroupKind) -> List[str]:
        """
        Read back the members of a group, without the placeholder value.

        Raises:
            DirectoryError: If the read-back search fails
        """
        entries = self.session.search(
            group_dn, scope="base", attributes=list(MEMBERSHIP_ATTRIBUTES), size_limit=1
        )
        if not entries:
            return []
        members = get_attribute_values(entries[0], kind.membership_attribute)
        return entry_builder.filter_placeholder_members(members, self.placeholder_member)
