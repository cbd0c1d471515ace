import logging
from typing import Any, Dict, Optional, Tuple

from cluster.exceptions import ClusterError
from directory.builders.entry_builder import resolve_home_directory
from directory.exceptions import DirectoryServiceError
from directory.facade.directory_facade import DirectoryFacade
from directory.models.resources import PrincipalPhase, PrincipalSpec, ResourceKind, ResourceRecord

from .base_controller import DirectoryEntryController

logger = logging.getLogger(__name__)


class PrincipalController(DirectoryEntryController):
    """
    Reconciles LDAPUser records.

    A pass converges the user entry first and the group memberships second.
    Desired groups that do not exist in the directory do not fail the pass;
    they are reported in ``missingGroups`` and turn the phase to Warning.
    """

    kind = ResourceKind.PRINCIPAL
    phases = PrincipalPhase

    def parse_spec(self, data: Dict[str, Any]) -> PrincipalSpec:
        return PrincipalSpec.from_dict(data, default_ou=self.config['users_ou'])

    def resolve_password(self, record: ResourceRecord) -> Optional[str]:
        """Initial password from the record's password secret, read in the record's namespace."""
        ref = record.spec.password_secret
        if ref is None:
            return None
        try:
            return self.read_secret(record.key.namespace, ref)
        except ClusterError as e:
            raise ClusterError(f"failed to get user password: {e}") from e

    def apply(self, record: ResourceRecord, facade: DirectoryFacade) -> Tuple[PrincipalPhase, str, Dict[str, Any]]:
        spec: PrincipalSpec = record.spec
        user_dn = facade.principal_dn(spec.username, spec.organizational_unit)
        fields = {
            "dn": user_dn,
            "actualHomeDirectory": resolve_home_directory(spec),
        }

        try:
            outcome = facade.entries.reconcile(user_dn, spec, self.resolve_password(record))
        except (DirectoryServiceError, ClusterError) as e:
            logger.error(f"Failed to reconcile user {spec.username}: {e}")
            return PrincipalPhase.ERROR, f"Failed to reconcile user: {e}", {}
        logger.info(f"User {spec.username} {outcome.value} at {user_dn}")

        try:
            result = facade.memberships.sync(
                spec.username, spec.groups, spec.organizational_unit, self.config['groups_ou']
            )
        except DirectoryServiceError as e:
            logger.error(f"Failed to reconcile groups for user {spec.username}: {e}")
            return PrincipalPhase.ERROR, f"Failed to reconcile user groups: {e}", fields

        fields["groups"] = result.existing_groups
        fields["missingGroups"] = result.missing_groups

        if result.missing_groups:
            message = (
                f"User synchronized with warnings: {len(result.missing_groups)} missing groups "
                f"({', '.join(result.missing_groups)})"
            )
            return PrincipalPhase.WARNING, message, fields
        return PrincipalPhase.READY, "User successfully synchronized", fields

    def delete_entry(self, record: ResourceRecord, facade: DirectoryFacade) -> None:
        spec: PrincipalSpec = record.spec
        user_dn = facade.principal_dn(spec.username, spec.organizational_unit)
        logger.info(f"Deleting user from LDAP: {user_dn}")
        facade.entries.delete(user_dn)
