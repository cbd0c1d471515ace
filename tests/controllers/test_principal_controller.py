"""
Unit tests for PrincipalController.

Drives full reconciliation passes against the in-memory record store and
directory: finalizer protocol, connection gating, phase determination,
deletion and idempotence.
"""

import pytest

from cluster.exceptions import ConflictError
from controllers.principal_controller import PrincipalController
from directory.models.resources import ResourceKey, ResourceKind

USER_DN = "uid=jdoe,ou=users,dc=example,dc=com"
PRINCIPAL = ResourceKind.PRINCIPAL


@pytest.fixture
def controller(store, secrets, config, facade_factory):
    return PrincipalController(store, secrets, config, facade_factory=facade_factory)


def status_of(store, key):
    return store.status(PRINCIPAL, key)


class TestFinalizerProtocol:
    def test_adds_finalizer_first(self, controller, store, add_connection, add_principal, facade_factory, config):
        """First sight only adds the finalizer and asks to run again."""
        add_connection()
        key = add_principal(finalized=False)

        result = controller.reconcile(key)

        assert result.is_immediate
        assert store.get(PRINCIPAL, key)["metadata"]["finalizers"] == [config['finalizer']]
        assert facade_factory.calls == []

    def test_missing_record_is_done(self, controller):
        result = controller.reconcile(ResourceKey("ghost", "team"))
        assert result.is_done

    def test_tombstoned_without_finalizer_is_done(self, controller, store, add_principal, facade_factory):
        key = add_principal(finalized=False)
        store.tombstone(PRINCIPAL, key)

        assert controller.reconcile(key).is_done
        assert facade_factory.calls == []


class TestPhases:
    def test_ready(self, controller, store, add_connection, add_principal, directory, config):
        add_connection()
        key = add_principal()

        result = controller.reconcile(key)

        assert result.is_done
        status = status_of(store, key)
        assert status["phase"] == "Ready"
        assert status["message"] == "User successfully synchronized"
        assert status["dn"] == USER_DN
        assert status["actualHomeDirectory"] == "/home/jdoe"
        assert status["groups"] == []
        assert status["missingGroups"] == []
        assert status["observedGeneration"] == 3
        assert status["conditions"][0]["status"] == "True"
        assert status["conditions"][0]["reason"] == "Ready"
        assert directory.attributes(USER_DN)["mail"] == ["jdoe@example.com"]

    def test_warning_lists_missing_groups(self, controller, store, add_connection, add_principal, directory):
        """Desired [a, b] with only a present gives Warning naming b."""
        add_connection()
        directory.seed_group("a", members=["cn=dummy"])
        key = add_principal(groups=["a", "b"])

        result = controller.reconcile(key)

        assert result.is_done
        status = status_of(store, key)
        assert status["phase"] == "Warning"
        assert "1 missing groups (b)" in status["message"]
        assert status["groups"] == ["a"]
        assert status["missingGroups"] == ["b"]
        assert status["conditions"][0]["reason"] == "ReadyWithWarnings"
        assert status["conditions"][0]["status"] == "True"
        assert USER_DN in directory.attributes("cn=a,ou=groups,dc=example,dc=com")["member"]

    def test_warning_message_joins_names(self, controller, store, add_connection, add_principal):
        add_connection()
        key = add_principal(groups=["x", "y"])

        controller.reconcile(key)

        assert status_of(store, key)["message"] == (
            "User synchronized with warnings: 2 missing groups (x, y)"
        )

    def test_pending_when_server_not_connected(self, controller, store, add_connection, add_principal,
                                               facade_factory, config):
        add_connection(status="Disconnected")
        key = add_principal()

        result = controller.reconcile(key)

        assert result.requeue_after == config['requeue_after']
        status = status_of(store, key)
        assert status["phase"] == "Pending"
        assert status["message"] == "LDAP server is not connected"
        assert status["conditions"][0]["status"] == "False"
        assert facade_factory.calls == []

    def test_error_when_server_missing(self, controller, store, add_principal, config):
        key = add_principal()

        result = controller.reconcile(key)

        assert result.requeue_after == config['requeue_after']
        assert status_of(store, key)["phase"] == "Error"
        assert status_of(store, key)["message"].startswith("Failed to get LDAP server:")

    def test_server_reference_defaults_to_own_namespace(self, controller, store, add_connection, add_principal):
        add_connection(namespace="team")
        key = add_principal(ldapServerRef={"name": "ldap"})

        controller.reconcile(key)

        # bind secret is read from the connection's namespace, where none exists
        assert status_of(store, key)["message"].startswith("Failed to connect to LDAP:")

    def test_error_when_connect_fails(self, controller, store, add_connection, add_principal,
                                      facade_factory, connect_error):
        add_connection()
        key = add_principal()
        facade_factory.error = connect_error

        controller.reconcile(key)

        status = status_of(store, key)
        assert status["phase"] == "Error"
        assert status["message"] == f"Failed to connect to LDAP: {connect_error}"

    def test_bind_secret_read_from_connection_namespace(self, controller, add_connection, add_principal,
                                                        facade_factory):
        add_connection()
        key = add_principal()

        controller.reconcile(key)

        assert facade_factory.calls[0]["credential"] == "bind-secret"

    def test_password_from_principal_namespace(self, controller, add_connection, add_principal, directory):
        add_connection()
        key = add_principal(passwordSecret={"name": "jdoe-password", "key": "password"})

        controller.reconcile(key)

        assert directory.attributes(USER_DN)["userPassword"] == ["s3cret"]

    def test_error_when_password_secret_missing(self, controller, store, add_connection, add_principal, directory):
        add_connection()
        key = add_principal(passwordSecret={"name": "nope", "key": "password"})

        controller.reconcile(key)

        status = status_of(store, key)
        assert status["phase"] == "Error"
        assert status["message"].startswith("Failed to reconcile user: failed to get user password")
        assert USER_DN.lower() not in directory.entries

    def test_error_when_entry_fails(self, controller, store, add_connection, add_principal, directory):
        add_connection()
        key = add_principal()
        directory.failing_exists.add(USER_DN.lower())

        controller.reconcile(key)

        assert status_of(store, key)["message"].startswith("Failed to reconcile user:")

    def test_error_when_memberships_unreadable(self, controller, store, add_connection, add_principal, directory):
        add_connection()
        key = add_principal(groups=["a"])
        directory.failing_searches.add("ou=groups,dc=example,dc=com")

        result = controller.reconcile(key)

        status = status_of(store, key)
        assert status["phase"] == "Error"
        assert status["message"].startswith("Failed to reconcile user groups:")
        assert result.requeue_after == 300

    def test_ready_without_group_ou(self, controller, store, add_connection, add_principal, directory):
        """A directory with no groups OU and no desired groups is simply Ready."""
        add_connection()
        del directory.entries["ou=groups,dc=example,dc=com"]
        key = add_principal(groups=[])

        result = controller.reconcile(key)

        assert result.is_done
        status = status_of(store, key)
        assert status["phase"] == "Ready"
        assert status["groups"] == []
        assert status["missingGroups"] == []

    def test_status_conflict_is_retried(self, controller, store, add_connection, add_principal):
        add_connection()
        key = add_principal()
        store.inject_conflicts = 1

        controller.reconcile(key)

        assert status_of(store, key)["phase"] == "Ready"

    def test_session_closed_after_pass(self, controller, add_connection, add_principal, directory):
        add_connection()
        controller.reconcile(add_principal())
        assert directory.closed is True


class TestIdempotence:
    def test_second_pass_changes_nothing(self, controller, store, add_connection, add_principal, directory):
        """Same desired state twice: same observed state, no net directory change."""
        add_connection()
        directory.seed_group("a", members=["cn=dummy"])
        key = add_principal(groups=["a", "b"])

        controller.reconcile(key)
        first = dict(status_of(store, key))
        snapshot = directory.snapshot()

        controller.reconcile(key)
        second = dict(status_of(store, key))

        assert directory.snapshot() == snapshot
        first.pop("lastModified")
        second.pop("lastModified")
        assert first == second


class TestDeletion:
    def test_deletes_entry_and_removes_finalizer(self, controller, store, add_connection, add_principal, directory):
        add_connection()
        key = add_principal()
        controller.reconcile(key)
        assert USER_DN.lower() in directory.entries

        store.tombstone(PRINCIPAL, key)
        result = controller.reconcile(key)

        assert result.is_done
        assert USER_DN.lower() not in directory.entries
        assert not store.exists(PRINCIPAL, key)

    def test_deletion_with_missing_server_still_terminates(self, controller, store, add_principal):
        key = add_principal()
        store.tombstone(PRINCIPAL, key)

        controller.reconcile(key)

        assert not store.exists(PRINCIPAL, key)

    def test_deletion_with_unreachable_server_still_terminates(self, controller, store, add_connection,
                                                               add_principal, facade_factory, connect_error):
        add_connection()
        key = add_principal()
        store.tombstone(PRINCIPAL, key)
        facade_factory.error = connect_error

        controller.reconcile(key)

        assert not store.exists(PRINCIPAL, key)

    def test_deletion_of_absent_entry(self, controller, store, add_connection, add_principal):
        add_connection()
        key = add_principal()
        store.tombstone(PRINCIPAL, key)

        controller.reconcile(key)

        assert not store.exists(PRINCIPAL, key)

    def test_deletion_does_not_wait_for_connected(self, controller, store, add_connection, add_principal, directory):
        """Cleanup is attempted even while the server reports Disconnected."""
        add_connection(status="Disconnected")
        directory.seed(USER_DN, uid="jdoe")
        key = add_principal()
        store.tombstone(PRINCIPAL, key)

        controller.reconcile(key)

        assert USER_DN.lower() not in directory.entries
        assert not store.exists(PRINCIPAL, key)

    def test_finalizer_conflict_is_retried(self, controller, store, add_connection, add_principal, directory):
        """A stale version on the finalizer patch is re-read and patched again."""
        add_connection()
        key = add_principal()
        store.tombstone(PRINCIPAL, key)
        store.inject_finalizer_conflicts = 1

        result = controller.reconcile(key)

        assert result.is_done
        assert store.inject_finalizer_conflicts == 0
        assert not store.exists(PRINCIPAL, key)

    def test_persistent_finalizer_conflict_raises(self, controller, store, add_principal):
        key = add_principal()
        store.tombstone(PRINCIPAL, key)
        store.inject_finalizer_conflicts = 10

        with pytest.raises(ConflictError):
            controller.reconcile(key)

        assert store.exists(PRINCIPAL, key)
