"""
Shared fixtures: an in-memory directory, an in-memory record store and a
dictionary-backed secret store, plus builders for the three record kinds.
"""

import copy
import os
import re

import pytest
from ldap3 import MODIFY_ADD, MODIFY_DELETE, MODIFY_REPLACE

from cluster.exceptions import ConflictError, NotFoundError
from controllers.config import OperatorConfig
from directory.exceptions import ConnectError, DirectoryError, NoSuchEntryError
from directory.facade.directory_facade import DirectoryFacade
from directory.models.resources import ResourceKey, ResourceKind

BASE_DN = "dc=example,dc=com"

_MEMBERSHIP_BY_CLASS = {
    "groupofnames": "member",
    "posixgroup": "memberUid",
    "groupofuniquenames": "uniqueMember",
}
_MEMBERSHIP_FILTER = re.compile(r"\(\|\(member=(.*?)\)\(uniqueMember=.*?\)\(memberUid=(.*?)\)\)")


class FakeDirectorySession:
    """
    In-memory stand-in for DirectorySession.

    Enforces the rules the reconcilers depend on: adds of existing entries
    fail, membership attributes must match the group's object class, adding
    a value twice or deleting an absent value fails.
    """

    def __init__(self, base_dn=BASE_DN):
        self.base_dn = base_dn
        self.entries = {}
        self.calls = []
        self.closed = False
        self.failing_exists = set()
        self.failing_searches = set()
        self.failing_modifies = set()

    # ----- test helpers -----

    def seed(self, dn, **attributes):
        self.entries[dn.lower()] = {
            "dn": dn,
            "attributes": {k: list(v) if isinstance(v, (list, tuple)) else [v] for k, v in attributes.items()},
        }

    def seed_group(self, name, kind="groupOfNames", members=(), ou="groups"):
        attribute = _MEMBERSHIP_BY_CLASS[kind.lower()]
        dn = f"cn={name},ou={ou},{self.base_dn}"
        attributes = {"objectClass": [kind], "cn": [name]}
        if members:
            attributes[attribute] = list(members)
        self.seed(dn, **attributes)
        return dn

    def attributes(self, dn):
        return self.entries[dn.lower()]["attributes"]

    def snapshot(self):
        return copy.deepcopy(self.entries)

    def mutations(self):
        return [c for c in self.calls if c[0] in ("add", "modify", "delete")]

    # ----- session interface -----

    def entry_exists(self, dn):
        if dn.lower() in self.failing_exists:
            raise DirectoryError(f"search failed at {dn}: busy")
        return dn.lower() in self.entries

    def search(self, search_base, search_filter="(objectClass=*)", scope="base", attributes=None, size_limit=0):
        self.calls.append(("search", search_base, search_filter, scope))
        if search_base.lower() in self.failing_searches:
            raise DirectoryError(f"search failed at {search_base}: unavailable")

        if scope == "base":
            entry = self.entries.get(search_base.lower())
            if entry is None:
                raise NoSuchEntryError(f"no such entry: {search_base}")
            return [copy.deepcopy(entry)]

        if search_base.lower() not in self.entries:
            raise NoSuchEntryError(f"no such entry: {search_base}")

        match = _MEMBERSHIP_FILTER.match(search_filter)
        suffix = "," + search_base.lower()
        results = []
        for key, entry in self.entries.items():
            if not key.endswith(suffix):
                continue
            if match:
                user_dn, username = match.group(1).lower(), match.group(2)
                attrs = {k.lower(): v for k, v in entry["attributes"].items()}
                if not (
                    user_dn in [m.lower() for m in attrs.get("member", [])]
                    or user_dn in [m.lower() for m in attrs.get("uniquemember", [])]
                    or username in attrs.get("memberuid", [])
                ):
                    continue
            results.append(copy.deepcopy(entry))
        return results

    def add(self, dn, attributes):
        self.calls.append(("add", dn, copy.deepcopy(attributes)))
        if dn.lower() in self.entries:
            raise DirectoryError(f"add failed for {dn}: entryAlreadyExists")
        self.entries[dn.lower()] = {"dn": dn, "attributes": copy.deepcopy(attributes)}

    def modify(self, dn, changes):
        self.calls.append(("modify", dn, copy.deepcopy(changes)))
        if dn.lower() in self.failing_modifies:
            raise DirectoryError(f"modify failed for {dn}: unwillingToPerform")
        entry = self.entries.get(dn.lower())
        if entry is None:
            raise NoSuchEntryError(f"no such entry: {dn}")

        attributes = copy.deepcopy(entry["attributes"])
        classes = [c.lower() for c in attributes.get("objectClass", [])]
        allowed = {_MEMBERSHIP_BY_CLASS[c] for c in classes if c in _MEMBERSHIP_BY_CLASS}
        for name, operations in changes.items():
            if name in _MEMBERSHIP_BY_CLASS.values() and name not in allowed:
                raise DirectoryError(f"modify failed for {dn}: objectClassViolation")
            for operation, values in operations:
                current = attributes.setdefault(name, [])
                if operation == MODIFY_REPLACE:
                    attributes[name] = list(values)
                elif operation == MODIFY_ADD:
                    if any(v in current for v in values):
                        raise DirectoryError(f"modify failed for {dn}: attributeOrValueExists")
                    current.extend(values)
                elif operation == MODIFY_DELETE:
                    if any(v not in current for v in values):
                        raise DirectoryError(f"modify failed for {dn}: noSuchAttribute")
                    attributes[name] = [v for v in current if v not in values]
        entry["attributes"] = attributes

    def delete(self, dn):
        self.calls.append(("delete", dn))
        if dn.lower() not in self.entries:
            raise NoSuchEntryError(f"no such entry: {dn}")
        del self.entries[dn.lower()]

    def close(self):
        self.closed = True


class FakeRecordStore:
    """
    In-memory record store with resource versions.

    ``inject_conflicts`` makes the next N status writes fail as if another
    writer had updated the record first. ``inject_finalizer_conflicts``
    does the same for finalizer patches.
    """

    def __init__(self):
        self.objects = {}
        self.inject_conflicts = 0
        self.inject_finalizer_conflicts = 0
        self.status_writes = 0
        self._version = 0

    def _next_version(self):
        self._version += 1
        return str(self._version)

    def put(self, kind, obj):
        obj = copy.deepcopy(obj)
        obj.setdefault("metadata", {})["resourceVersion"] = self._next_version()
        meta = obj["metadata"]
        self.objects[(kind, meta.get("namespace"), meta["name"])] = obj
        return obj

    def _require(self, kind, key):
        obj = self.objects.get((kind, key.namespace, key.name))
        if obj is None:
            raise NotFoundError(f"{kind.value} {key} not found")
        return obj

    def tombstone(self, kind, key):
        self._require(kind, key)["metadata"]["deletionTimestamp"] = "2026-01-01T00:00:00Z"

    def exists(self, kind, key):
        return (kind, key.namespace, key.name) in self.objects

    def get(self, kind, key):
        return copy.deepcopy(self._require(kind, key))

    def list(self, kind, namespace=None):
        return [
            copy.deepcopy(obj)
            for (k, ns, _), obj in self.objects.items()
            if k == kind and (namespace is None or ns == namespace)
        ]

    def set_finalizers(self, kind, key, finalizers, resource_version=None):
        obj = self._require(kind, key)
        if self.inject_finalizer_conflicts > 0:
            self.inject_finalizer_conflicts -= 1
            obj["metadata"]["resourceVersion"] = self._next_version()
            raise ConflictError(f"conflict writing {kind.value} {key}")
        if resource_version and obj["metadata"]["resourceVersion"] != resource_version:
            raise ConflictError(f"conflict writing {kind.value} {key}")
        obj["metadata"]["finalizers"] = list(finalizers)
        obj["metadata"]["resourceVersion"] = self._next_version()
        if obj["metadata"].get("deletionTimestamp") and not finalizers:
            del self.objects[(kind, key.namespace, key.name)]
        return copy.deepcopy(obj)

    def annotate(self, kind, key, annotations):
        obj = self._require(kind, key)
        obj["metadata"].setdefault("annotations", {}).update(annotations)
        obj["metadata"]["resourceVersion"] = self._next_version()
        return copy.deepcopy(obj)

    def replace_status(self, kind, key, body):
        obj = self._require(kind, key)
        if self.inject_conflicts > 0:
            self.inject_conflicts -= 1
            obj["metadata"]["resourceVersion"] = self._next_version()
            raise ConflictError(f"conflict writing {kind.value} {key} status")
        if body["metadata"].get("resourceVersion") != obj["metadata"]["resourceVersion"]:
            raise ConflictError(f"conflict writing {kind.value} {key} status")
        obj["status"] = copy.deepcopy(body.get("status") or {})
        obj["metadata"]["resourceVersion"] = self._next_version()
        self.status_writes += 1
        return copy.deepcopy(obj)

    def status(self, kind, key):
        return self._require(kind, key).get("status") or {}


class DictSecretStore:
    def __init__(self, values=None):
        self.values = dict(values or {})

    def get_value(self, namespace, name, key):
        try:
            return self.values[(namespace, name, key)]
        except KeyError:
            raise NotFoundError(f"secret {namespace}/{name} key {key} not found")


class FakeFacadeFactory:
    """Opens DirectoryFacades over one FakeDirectorySession and records the calls."""

    def __init__(self, session):
        self.session = session
        self.calls = []
        self.error = None

    def __call__(self, spec, credential, ca_certificate=None, placeholder_member="cn=dummy"):
        self.calls.append({"spec": spec, "credential": credential, "ca_certificate": ca_certificate})
        if self.error is not None:
            raise self.error
        self.session.closed = False
        return DirectoryFacade(self.session, spec.base_dn, placeholder_member)


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def config(monkeypatch):
    for name in list(os.environ):
        if name.startswith("DIRECTORY_"):
            monkeypatch.delenv(name, raising=False)
    cfg = OperatorConfig.get_config()
    cfg['status_retry_backoff'] = 0
    return cfg


@pytest.fixture
def directory():
    session = FakeDirectorySession()
    session.seed(BASE_DN, objectClass=["domain"], dc="example")
    session.seed(f"ou=users,{BASE_DN}", objectClass=["organizationalUnit"], ou="users")
    session.seed(f"ou=groups,{BASE_DN}", objectClass=["organizationalUnit"], ou="groups")
    return session


@pytest.fixture
def store():
    return FakeRecordStore()


@pytest.fixture
def secrets():
    return DictSecretStore({
        ("directory", "ldap-bind", "password"): b"bind-secret",
        ("team", "jdoe-password", "password"): b"s3cret",
    })


@pytest.fixture
def facade_factory(directory):
    return FakeFacadeFactory(directory)


@pytest.fixture
def add_connection(store, config):
    def _add(name="ldap", namespace="directory", status="Connected", **spec):
        body = {
            "host": "ldap.example.com",
            "bindDN": f"cn=admin,{BASE_DN}",
            "baseDN": BASE_DN,
            "bindPasswordSecret": {"name": "ldap-bind", "key": "password"},
        }
        body.update(spec)
        obj = {
            "metadata": {"name": name, "namespace": namespace, "generation": 1,
                         "finalizers": [config['finalizer']]},
            "spec": body,
            "status": {"connectionStatus": status} if status else {},
        }
        store.put(ResourceKind.CONNECTION, obj)
        return ResourceKey(name=name, namespace=namespace)
    return _add


@pytest.fixture
def add_principal(store, config):
    def _add(name="jdoe", namespace="team", finalized=True, **spec):
        body = {
            "ldapServerRef": {"name": "ldap", "namespace": "directory"},
            "username": "jdoe",
            "firstName": "Jane",
            "lastName": "Doe",
            "email": "jdoe@example.com",
        }
        body.update(spec)
        obj = {
            "metadata": {"name": name, "namespace": namespace, "generation": 3,
                         "finalizers": [config['finalizer']] if finalized else []},
            "spec": body,
        }
        store.put(ResourceKind.PRINCIPAL, obj)
        return ResourceKey(name=name, namespace=namespace)
    return _add


@pytest.fixture
def add_group(store, config):
    def _add(name="devs", namespace="team", finalized=True, **spec):
        body = {
            "ldapServerRef": {"name": "ldap", "namespace": "directory"},
            "groupName": "devs",
            "description": "Developers",
        }
        body.update(spec)
        obj = {
            "metadata": {"name": name, "namespace": namespace, "generation": 2,
                         "finalizers": [config['finalizer']] if finalized else []},
            "spec": body,
        }
        store.put(ResourceKind.GROUP, obj)
        return ResourceKey(name=name, namespace=namespace)
    return _add


@pytest.fixture
def connect_error():
    return ConnectError("failed to connect to LDAP server: connection refused", stage="connect")
