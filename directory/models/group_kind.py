"""
Group kinds understood by the directory reconcilers.

Each kind carries its own small method table: the structural object class,
the attribute that lists members, and how a principal is written into that
attribute (full DN for the name-list kinds, bare username for posix groups).
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple

from ldap3 import MODIFY_ADD, MODIFY_DELETE


class GroupKind(str, Enum):
    """Closed set of group representations."""

    POSIX = "posixGroup"
    NAMES = "groupOfNames"
    UNIQUE_NAMES = "groupOfUniqueNames"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "GroupKind":
        """Resolve a record's groupType, falling back to groupOfNames."""
        for kind in cls:
            if kind.value == value:
                return kind
        return cls.NAMES

    @property
    def object_classes(self) -> List[str]:
        return [self.value]

    @property
    def membership_attribute(self) -> str:
        return _MEMBERSHIP_ATTRIBUTES[self]

    @property
    def requires_member(self) -> bool:
        """True when the schema refuses an entry without at least one member."""
        return self is not GroupKind.POSIX

    def member_value(self, user_dn: str, username: str) -> str:
        """Value written to the membership attribute for a principal."""
        if self is GroupKind.POSIX:
            return username
        return user_dn

    def add_changes(self, user_dn: str, username: str) -> Dict[str, List[Tuple[str, List[str]]]]:
        """ldap3 modify changes that add the principal to a group of this kind."""
        return {
            self.membership_attribute: [
                (MODIFY_ADD, [self.member_value(user_dn, username)])
            ]
        }

    def remove_changes(self, user_dn: str, username: str) -> Dict[str, List[Tuple[str, List[str]]]]:
        """ldap3 modify changes that remove the principal from a group of this kind."""
        return {
            self.membership_attribute: [
                (MODIFY_DELETE, [self.member_value(user_dn, username)])
            ]
        }


_MEMBERSHIP_ATTRIBUTES = {
    GroupKind.POSIX: "memberUid",
    GroupKind.NAMES: "member",
    GroupKind.UNIQUE_NAMES: "uniqueMember",
}

# Order in which membership writes are attempted when a group's kind is unknown.
MEMBERSHIP_FALLBACK_ORDER = (
    GroupKind.NAMES,
    GroupKind.POSIX,
    GroupKind.UNIQUE_NAMES,
)

MEMBERSHIP_ATTRIBUTES = [kind.membership_attribute for kind in GroupKind]
