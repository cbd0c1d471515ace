"""
kopf bindings for the directory controllers.

Handlers are registered on an explicit registry so the API group and version
can come from configuration. Each handler builds the record key and hands it
to the matching controller; the controller's ReconcileResult is translated
for kopf:

- done: return normally
- requeue immediately (finalizer just added): run the pass again in-process
- requeue after a delay: raise kopf.TemporaryError so kopf re-invokes later
"""

import logging
from typing import Any, Dict, Optional

import kopf

from cluster.adapters.kubernetes_adapter import KubernetesAdapter
from cluster.adapters.secret_store import create_secret_store
from controllers.base_controller import BaseController
from controllers.connection_prober import ConnectionProber
from controllers.group_controller import GroupController
from controllers.principal_controller import PrincipalController
from controllers.results import ReconcileResult
from directory.models.resources import ResourceKey, ResourceKind

logger = logging.getLogger(__name__)

MAX_IMMEDIATE_PASSES = 3


def resource_key(name: str, namespace: Optional[str]) -> ResourceKey:
    return ResourceKey(name=name, namespace=namespace)


def is_tombstoned(meta: Dict[str, Any], **_) -> bool:
    return bool(meta.get("deletionTimestamp"))


def settle(controller: BaseController, key: ResourceKey) -> ReconcileResult:
    """Run passes until the controller stops asking for an immediate requeue."""
    result = controller.reconcile(key)
    passes = 1
    while result.is_immediate and passes < MAX_IMMEDIATE_PASSES:
        result = controller.reconcile(key)
        passes += 1
    return result


def run_pass(controller: BaseController, key: ResourceKey, honor_delay: bool = True) -> None:
    """
    Run a pass for ``key`` and translate its result for kopf.

    Raises:
        kopf.TemporaryError: When the pass asks to be re-run later
    """
    result = settle(controller, key)
    if result.is_done or not honor_delay:
        return
    raise kopf.TemporaryError(
        f"{controller.kind.value} {key} requeued", delay=result.requeue_after or 0
    )


def build_controllers(config: Dict[str, Any], store=None, secrets=None) -> Dict[ResourceKind, BaseController]:
    """
    Build the three controllers against one record store and secret store.

    Args:
        config: Operator configuration from OperatorConfig.get_config()
        store: Record store (a KubernetesAdapter is created if omitted)
        secrets: Secret store (created from the configured backend if omitted)

    Returns:
        Dict mapping each resource kind to its controller
    """
    if store is None:
        store = KubernetesAdapter(config['api_group'], config['api_version'])
    if secrets is None:
        secrets = create_secret_store(
            config['secret_backend'],
            adapter=store,
            keyring_service=config['keyring_service'],
        )

    return {
        ResourceKind.CONNECTION: ConnectionProber(store, secrets, config),
        ResourceKind.PRINCIPAL: PrincipalController(store, secrets, config),
        ResourceKind.GROUP: GroupController(store, secrets, config),
    }


def register_handlers(
    config: Dict[str, Any],
    controllers: Dict[ResourceKind, BaseController],
    registry: Optional[kopf.OperatorRegistry] = None,
) -> kopf.OperatorRegistry:
    """
    Register create/update/resume, deletion and probe handlers.

    Returns:
        kopf.OperatorRegistry: The registry holding the handlers
    """
    registry = registry or kopf.OperatorRegistry()
    resource = {"group": config['api_group'], "version": config['api_version']}

    for kind in (ResourceKind.PRINCIPAL, ResourceKind.GROUP):
        _register_entry_kind(registry, resource, kind, controllers[kind])

    prober: ConnectionProber = controllers[ResourceKind.CONNECTION]
    plural = ResourceKind.CONNECTION.value

    @kopf.on.create(**resource, plural=plural, registry=registry)
    @kopf.on.update(**resource, plural=plural, registry=registry)
    @kopf.on.resume(**resource, plural=plural, registry=registry)
    def reconcile_connection(name, namespace, **_):
        # The probe timer owns periodic re-checks.
        run_pass(prober, resource_key(name, namespace), honor_delay=False)

    @kopf.on.event(**resource, plural=plural, when=is_tombstoned, registry=registry)
    def finalize_connection(name, namespace, **_):
        prober.reconcile(resource_key(name, namespace))

    @kopf.timer(**resource, plural=plural, interval=config['probe_tick'], registry=registry)
    def probe_connection(name, namespace, **_):
        prober.reconcile_if_due(resource_key(name, namespace))

    logger.info(f"Registered handlers for {config['api_group']}/{config['api_version']}")
    return registry


def _register_entry_kind(registry, resource, kind: ResourceKind, controller: BaseController) -> None:
    plural = kind.value

    @kopf.on.create(**resource, plural=plural, registry=registry)
    @kopf.on.update(**resource, plural=plural, registry=registry)
    @kopf.on.resume(**resource, plural=plural, registry=registry)
    def reconcile_entry(name, namespace, **_):
        run_pass(controller, resource_key(name, namespace))

    @kopf.on.event(**resource, plural=plural, when=is_tombstoned, registry=registry)
    def finalize_entry(name, namespace, **_):
        controller.reconcile(resource_key(name, namespace))
