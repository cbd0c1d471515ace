import logging
from typing import Any, Dict, Tuple

from directory.exceptions import DirectoryServiceError
from directory.facade.directory_facade import DirectoryFacade
from directory.models.resources import GroupPhase, GroupSpec, ResourceKind, ResourceRecord

from .base_controller import DirectoryEntryController

logger = logging.getLogger(__name__)


class GroupController(DirectoryEntryController):
    """
    Reconciles LDAPGroup records.

    Membership is owned by the principals; a group pass only converges the
    group entry itself and refreshes the observed member list from a
    read-back of the entry.
    """

    kind = ResourceKind.GROUP
    phases = GroupPhase

    def parse_spec(self, data: Dict[str, Any]) -> GroupSpec:
        return GroupSpec.from_dict(data, default_ou=self.config['groups_ou'])

    def apply(self, record: ResourceRecord, facade: DirectoryFacade) -> Tuple[GroupPhase, str, Dict[str, Any]]:
        spec: GroupSpec = record.spec
        group_dn = facade.group_dn(spec.group_name, spec.organizational_unit)

        try:
            outcome = facade.entries.reconcile(group_dn, spec)
            members = facade.entries.read_group_members(group_dn, spec.group_type)
        except DirectoryServiceError as e:
            logger.error(f"Failed to reconcile group {spec.group_name}: {e}")
            return GroupPhase.ERROR, f"Failed to reconcile group: {e}", {}

        logger.info(f"Group {spec.group_name} {outcome.value} with {len(members)} members")
        fields = {
            "dn": group_dn,
            "members": members,
            "memberCount": len(members),
        }
        return GroupPhase.READY, "Group successfully synchronized", fields

    def delete_entry(self, record: ResourceRecord, facade: DirectoryFacade) -> None:
        spec: GroupSpec = record.spec
        group_dn = facade.group_dn(spec.group_name, spec.organizational_unit)
        logger.info(f"Deleting group from LDAP: {group_dn}")
        facade.entries.delete(group_dn)
