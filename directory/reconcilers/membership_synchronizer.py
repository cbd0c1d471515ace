"""
Membership Synchronizer

Converges the groups a principal belongs to with the group names listed in
its desired state. Three group representations are supported (groupOfNames,
posixGroup, groupOfUniqueNames); because the caller does not know which one
a given group uses, membership writes walk a fixed fallback order and stop
at the first convention the directory accepts.

Failures are tolerated per group: a group that cannot be checked, joined or
left is logged and skipped so the principal's other memberships still
converge. Only a failure to read the current memberships aborts the pass.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from ..adapters.directory_session import DirectorySession, get_attribute_values
from ..builders.entry_builder import (
    build_group_dn,
    build_membership_filter,
    build_ou_dn,
    build_principal_dn,
)
from ..exceptions import DirectoryError, NoSuchEntryError, SyncError
from ..models.group_kind import MEMBERSHIP_FALLBACK_ORDER

logger = logging.getLogger(__name__)


@dataclass
class MembershipSyncResult:
    """Outcome of one synchronization pass."""

    existing_groups: List[str] = field(default_factory=list)
    missing_groups: List[str] = field(default_factory=list)
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class MembershipSynchronizer:
    """Group-membership synchronizer for a single directory session."""

    def __init__(self, session: DirectorySession, base_dn: str):
        self.session = session
        self.base_dn = base_dn

    def sync(
        self,
        username: str,
        desired_groups: List[str],
        user_ou: str,
        group_ou: str,
    ) -> MembershipSyncResult:
        """
        Converge ``username``'s group memberships to ``desired_groups``.

        Args:
            username: Principal username (uid)
            desired_groups: Group names the principal should belong to
            user_ou: OU holding the principal entry
            group_ou: OU holding the groups

        Returns:
            MembershipSyncResult: existing/missing split plus what changed

        Raises:
            SyncError: If the current memberships cannot be read
        """
        user_dn = build_principal_dn(username, user_ou, self.base_dn)
        current = self.current_groups(user_dn, username, group_ou)

        result = MembershipSyncResult()
        result.existing_groups, result.missing_groups = self.categorize_groups(
            desired_groups, group_ou
        )

        for group_name in result.existing_groups:
            if group_name in current:
                continue
            logger.info(f"Adding {username} to group {group_name}")
            if self._try_membership_change(group_name, group_ou, user_dn, username, add=True):
                result.added.append(group_name)
            else:
                result.failed.append(group_name)

        for group_name in current:
            if group_name in result.existing_groups:
                continue
            logger.info(f"Removing {username} from group {group_name}")
            if self._try_membership_change(group_name, group_ou, user_dn, username, add=False):
                result.removed.append(group_name)
            else:
                result.failed.append(group_name)

        return result

    def current_groups(self, user_dn: str, username: str, group_ou: str) -> List[str]:
        """
        Common names of every group under ``group_ou`` that lists the principal.

        A group OU that does not exist holds no memberships.

        Raises:
            SyncError: If the subtree search fails
        """
        group_base = build_ou_dn(group_ou, self.base_dn)
        try:
            entries = self.session.search(
                group_base,
                build_membership_filter(user_dn, username),
                scope="subtree",
                attributes=["cn"],
            )
        except NoSuchEntryError:
            logger.info(f"Group OU {group_base} does not exist, {username} has no current groups")
            return []
        except DirectoryError as e:
            raise SyncError(f"failed to read current groups for {username}: {e}") from e

        groups = []
        for entry in entries:
            for cn in get_attribute_values(entry, "cn")[:1]:
                if cn not in groups:
                    groups.append(cn)
        logger.debug(f"Current groups for {username}: {groups}")
        return groups

    def categorize_groups(self, desired_groups: List[str], group_ou: str):
        """
        Split desired group names into those present in the directory and
        those that are not.

        A group whose existence check errors is counted as missing.
        """
        existing, missing = [], []
        for group_name in desired_groups:
            if group_name in existing or group_name in missing:
                continue
            group_dn = build_group_dn(group_name, group_ou, self.base_dn)
            try:
                exists = self.session.entry_exists(group_dn)
            except DirectoryError as e:
                logger.warning(f"Existence check failed for group {group_name}: {e}")
                exists = False

            if exists:
                existing.append(group_name)
            else:
                logger.info(f"Group does not exist in directory: {group_name}")
                missing.append(group_name)
        return existing, missing

    def _try_membership_change(
        self, group_name: str, group_ou: str, user_dn: str, username: str, add: bool
    ) -> bool:
        group_dn = build_group_dn(group_name, group_ou, self.base_dn)
        for kind in MEMBERSHIP_FALLBACK_ORDER:
            if add:
                changes = kind.add_changes(user_dn, username)
            else:
                changes = kind.remove_changes(user_dn, username)
            try:
                self.session.modify(group_dn, changes)
            except DirectoryError as e:
                logger.warning(f"{kind.value} membership change rejected for {group_name}: {e}")
                continue
            logger.info(
                f"{'Added' if add else 'Removed'} {username} "
                f"{'to' if add else 'from'} {group_name} via {kind.membership_attribute}"
            )
            return True

        action = "add" if add else "remove"
        logger.error(f"Failed to {action} {username} for group {group_name} with all group types")
        return False
