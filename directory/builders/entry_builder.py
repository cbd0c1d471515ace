"""
Entry Builder

Pure mapping from desired-state records to directory attributes. Nothing in
this module talks to the directory; the reconcilers feed its output into
add and modify requests.

Rules:
- optional fields map to at most one attribute and are omitted when empty
- numeric fields are rendered as base-10 text
- name-list groups get a placeholder member at creation time, which is
  filtered back out of every membership read
- a missing home directory defaults to ``/home/<username>``
"""

from typing import Dict, Iterable, List, Optional, Tuple

from ldap3 import MODIFY_REPLACE
from ldap3.utils.conv import escape_filter_chars
from ldap3.utils.dn import escape_rdn

from ..models.group_kind import GroupKind
from ..models.resources import GroupSpec, PrincipalSpec

PRINCIPAL_OBJECT_CLASSES = ["inetOrgPerson", "posixAccount"]
DEFAULT_PLACEHOLDER_MEMBER = "cn=dummy"
HOME_DIRECTORY_PATTERN = "/home/{username}"

Changes = Dict[str, List[Tuple[str, List[str]]]]


def build_ou_dn(ou: str, base_dn: str) -> str:
    """DN of an organizational unit directly under the base; the base itself when ``ou`` is empty."""
    if not ou:
        return base_dn
    return f"ou={escape_rdn(ou)},{base_dn}"


def _join_dn(rdn: str, ou: str, base_dn: str) -> str:
    return f"{rdn},{build_ou_dn(ou, base_dn)}"


def build_principal_dn(username: str, ou: str, base_dn: str) -> str:
    """
    Build a principal DN: ``uid=<username>,ou=<ou>,<base_dn>``.

    The OU segment is omitted when ``ou`` is empty.
    """
    return _join_dn(f"uid={escape_rdn(username)}", ou, base_dn)


def build_group_dn(group_name: str, ou: str, base_dn: str) -> str:
    """
    Build a group DN: ``cn=<name>,ou=<ou>,<base_dn>``.

    The OU segment is omitted when ``ou`` is empty.
    """
    return _join_dn(f"cn={escape_rdn(group_name)}", ou, base_dn)


def build_membership_filter(user_dn: str, username: str) -> str:
    """Filter matching groups that list the principal under any membership convention."""
    dn = escape_filter_chars(user_dn)
    return (
        f"(|(member={dn})(uniqueMember={dn})"
        f"(memberUid={escape_filter_chars(username)}))"
    )


def resolve_home_directory(spec: PrincipalSpec) -> str:
    return spec.home_directory or HOME_DIRECTORY_PATTERN.format(username=spec.username)


def _put(attributes: Dict[str, List[str]], name: str, value) -> None:
    if value is None or value == "":
        return
    attributes[name] = [str(value)]


def _merge_additional(attributes: Dict[str, List[str]], additional: Dict[str, List[str]]) -> None:
    for name, values in additional.items():
        values = [v for v in values if v != ""]
        if values:
            attributes[name] = values


def build_principal_attributes(spec: PrincipalSpec, password: Optional[str] = None) -> Dict[str, List[str]]:
    """
    Attributes for creating a principal entry, in a stable order.

    Args:
        spec: Desired principal state
        password: Optional clear-text password resolved from the record's secret

    Returns:
        Dict[str, List[str]]: Attribute name to values
    """
    attributes = {
        "objectClass": list(PRINCIPAL_OBJECT_CLASSES),
        "uid": [spec.username],
        "cn": [spec.username],
    }
    _put(attributes, "givenName", spec.first_name)
    _put(attributes, "sn", spec.last_name)
    _put(attributes, "mail", spec.email)
    _put(attributes, "displayName", spec.display_name)
    _put(attributes, "uidNumber", spec.user_id)
    _put(attributes, "gidNumber", spec.group_id)
    attributes["homeDirectory"] = [resolve_home_directory(spec)]
    _put(attributes, "loginShell", spec.login_shell)
    _put(attributes, "userPassword", password)
    _merge_additional(attributes, spec.additional_attributes)
    return attributes


def build_principal_changes(spec: PrincipalSpec) -> Changes:
    """
    Replace-changes for an existing principal.

    Only the name fields, the contact field and the home directory are
    touched; object classes and uid/gid numbers are left alone.
    """
    changes = {}
    for name, value in (
        ("givenName", spec.first_name),
        ("sn", spec.last_name),
        ("mail", spec.email),
        ("displayName", spec.display_name),
    ):
        if value:
            changes[name] = [(MODIFY_REPLACE, [value])]
    changes["homeDirectory"] = [(MODIFY_REPLACE, [resolve_home_directory(spec)])]
    return changes


def build_group_attributes(
    spec: GroupSpec, placeholder_member: str = DEFAULT_PLACEHOLDER_MEMBER
) -> Dict[str, List[str]]:
    """
    Attributes for creating a group entry.

    Args:
        spec: Desired group state
        placeholder_member: Value used to satisfy the member-required schema
            of name-list groups before any real member exists

    Returns:
        Dict[str, List[str]]: Attribute name to values
    """
    kind = spec.group_type
    attributes = {
        "objectClass": kind.object_classes,
        "cn": [spec.group_name],
    }
    _put(attributes, "description", spec.description)
    if kind is GroupKind.POSIX:
        _put(attributes, "gidNumber", spec.group_id)
    if kind.requires_member:
        attributes[kind.membership_attribute] = [placeholder_member]
    _merge_additional(attributes, spec.additional_attributes)
    return attributes


def build_group_changes(spec: GroupSpec) -> Changes:
    """Replace-changes for an existing group: the description only."""
    if not spec.description:
        return {}
    return {"description": [(MODIFY_REPLACE, [spec.description])]}


def filter_placeholder_members(
    members: Iterable[str], placeholder_member: str = DEFAULT_PLACEHOLDER_MEMBER
) -> List[str]:
    return [m for m in members if m.lower() != placeholder_member.lower()]
