"""Unit tests for the reconciler."""

import pytest
from conftest import ingress, namespace, node, service

from meshwarden.controller import DELETED, Reconciler, build_router
from meshwarden.core.models import ResourceKind, StoreError

@pytest.fixture
def reconciler(store, config):
    store.add(node("node-1", ["10.42.0.0/24"]))
    return Reconciler(store, config, build_router(store, config))


def mesh_objects(store):
    return {
        (kind, ns, name)
        for (kind, ns, name) in store.objects
        if kind in (ResourceKind.PEER_AUTHENTICATION, ResourceKind.AUTHORIZATION_POLICY, ResourceKind.VIRTUAL_SERVICE)
    }


def two_backends(store):
    store.add(service("web", "app-ns", [{"name": "http", "port": 80, "targetPort": 8080}], selector={"app": "web"}))
    store.add(service("api", "app-ns", [{"port": 9000}], selector={"app": "api"}))
    return store.add(ingress("route", "app-ns", [("web", {"name": "http"}), ("api", {"number": 9000})]))


class TestSync:
    """Test applying and pruning produced objects."""

    async def test_ingress_objects_are_applied_with_owner_labels(self, store, reconciler):
        obj = store.add(ingress("route", "app-ns", [("web", {"name": "http"})]))
        store.add(service("web", "app-ns", [{"name": "http", "port": 80, "targetPort": 8080}], selector={"app": "web"}))

        result = await reconciler.reconcile(ResourceKind.INGRESS, "ADDED", obj)

        assert result.applied == 2
        assert mesh_objects(store) == {
            (ResourceKind.PEER_AUTHENTICATION, "app-ns", "acorn-myapp-route-web"),
            (ResourceKind.AUTHORIZATION_POLICY, "app-ns", "acorn-myapp-route-web"),
        }
        labels = store.applied[0]["metadata"]["labels"]
        assert labels["meshwarden.io/managed"] == "true"
        assert labels["meshwarden.io/handler"] == "ingress-policies"
        assert labels["meshwarden.io/owner-kind"] == "Ingress"
        assert labels["meshwarden.io/owner-namespace"] == "app-ns"
        assert labels["meshwarden.io/owner-name"] == "route"

    async def test_objects_no_longer_produced_are_deleted(self, store, reconciler):
        obj = two_backends(store)
        await reconciler.reconcile(ResourceKind.INGRESS, "ADDED", obj)
        assert len(mesh_objects(store)) == 4

        obj = store.find(ResourceKind.INGRESS, "app-ns", "route")
        obj["spec"]["rules"][0]["http"]["paths"].pop()
        result = await reconciler.reconcile(ResourceKind.INGRESS, "MODIFIED", obj)

        assert result.deleted == 2
        assert {name for _, _, name in mesh_objects(store)} == {"acorn-myapp-route-web"}

    async def test_unchanged_input_deletes_nothing(self, store, reconciler):
        obj = two_backends(store)
        await reconciler.reconcile(ResourceKind.INGRESS, "ADDED", obj)

        obj = store.find(ResourceKind.INGRESS, "app-ns", "route")
        result = await reconciler.reconcile(ResourceKind.INGRESS, "MODIFIED", obj)

        assert result.deleted == 0
        assert store.deleted == []

    async def test_record_is_rebuilt_from_labels(self, store, config, reconciler):
        """A fresh reconciler still prunes objects emitted before a restart."""
        obj = two_backends(store)
        await reconciler.reconcile(ResourceKind.INGRESS, "ADDED", obj)

        restarted = Reconciler(store, config, build_router(store, config))
        obj = store.find(ResourceKind.INGRESS, "app-ns", "route")
        obj["spec"]["rules"][0]["http"]["paths"].pop()
        result = await restarted.reconcile(ResourceKind.INGRESS, "MODIFIED", obj)

        assert result.deleted == 2
        assert {name for _, _, name in mesh_objects(store)} == {"acorn-myapp-route-web"}

    async def test_deleted_trigger_prunes_everything(self, store, reconciler):
        obj = store.add(namespace("app-ns", {"acorn.io/app-namespace": "acorn"}))
        await reconciler.reconcile(ResourceKind.NAMESPACE, "ADDED", obj)
        assert len(mesh_objects(store)) == 2

        result = await reconciler.reconcile(ResourceKind.NAMESPACE, DELETED, obj)

        assert result.deleted == 2
        assert mesh_objects(store) == set()

    async def test_trigger_that_stops_matching_is_pruned(self, store, reconciler):
        svc = store.add(
            service(
                "db",
                "app-ns",
                [{"port": 5432}],
                service_type="ExternalName",
                external_name="postgres.data.svc.cluster.local",
                labels={"acorn.io/managed": "true"},
            )
        )
        await reconciler.reconcile(ResourceKind.SERVICE, "ADDED", svc)
        assert mesh_objects(store) == {(ResourceKind.VIRTUAL_SERVICE, "app-ns", "db")}

        svc = store.find(ResourceKind.SERVICE, "app-ns", "db")
        svc["metadata"]["labels"] = {}
        await reconciler.reconcile(ResourceKind.SERVICE, "MODIFIED", svc)

        assert mesh_objects(store) == set()

    async def test_retry_is_propagated(self, store, reconciler):
        obj = store.add(ingress("route", "app-ns", [("missing", {"number": 80})]))

        result = await reconciler.reconcile(ResourceKind.INGRESS, "ADDED", obj)

        assert result.retry_after == 3
        assert result.applied == 0


class TestOwnerName:
    """Test owners whose name does not fit a label value."""

    async def test_long_ingress_name_is_shortened_in_labels(self, store, config, reconciler):
        name = "route-" + "x" * 94
        store.add(service("web", "app-ns", [{"name": "http", "port": 80, "targetPort": 8080}], selector={"app": "web"}))
        obj = store.add(ingress(name, "app-ns", [("web", {"name": "http"})]))

        await reconciler.reconcile(ResourceKind.INGRESS, "ADDED", obj)

        metadata = store.applied[0]["metadata"]
        assert len(metadata["labels"]["meshwarden.io/owner-name"]) <= 63
        assert metadata["annotations"]["meshwarden.io/owner-name"] == name

        restarted = Reconciler(store, config, build_router(store, config))
        result = await restarted.reconcile(ResourceKind.INGRESS, DELETED, store.find(ResourceKind.INGRESS, "app-ns", name))

        assert result.deleted == 2
        assert mesh_objects(store) == set()


def route_to(store, backend, port):
    obj = store.find(ResourceKind.INGRESS, "app-ns", "route")
    obj["spec"]["rules"][0]["http"]["paths"][0]["backend"]["service"] = {"name": backend, "port": port}
    return obj


class TestInterruptedSync:
    """Test passes that fail partway through writing."""

    @pytest.fixture
    def routed(self, store):
        store.add(service("web", "app-ns", [{"name": "http", "port": 80, "targetPort": 8080}], selector={"app": "web"}))
        store.add(service("api", "app-ns", [{"port": 9000}], selector={"app": "api"}))
        return store.add(ingress("route", "app-ns", [("api", {"number": 9000})]))

    async def test_objects_written_before_a_failed_apply_are_pruned_later(self, store, reconciler, routed):
        await reconciler.reconcile(ResourceKind.INGRESS, "ADDED", routed)

        store.fail_apply.add(("AuthorizationPolicy", "acorn-myapp-route-web"))
        with pytest.raises(StoreError):
            await reconciler.reconcile(ResourceKind.INGRESS, "MODIFIED", route_to(store, "web", {"name": "http"}))
        assert (ResourceKind.PEER_AUTHENTICATION, "app-ns", "acorn-myapp-route-web") in mesh_objects(store)

        await reconciler.reconcile(ResourceKind.INGRESS, "MODIFIED", route_to(store, "api", {"number": 9000}))

        assert {name for _, _, name in mesh_objects(store)} == {"acorn-myapp-route-api"}

    async def test_failed_delete_is_retried_on_the_next_pass(self, store, reconciler, routed):
        await reconciler.reconcile(ResourceKind.INGRESS, "ADDED", routed)

        store.fail_delete.add(("PeerAuthentication", "acorn-myapp-route-api"))
        obj = route_to(store, "web", {"name": "http"})
        with pytest.raises(StoreError):
            await reconciler.reconcile(ResourceKind.INGRESS, "MODIFIED", obj)

        result = await reconciler.reconcile(ResourceKind.INGRESS, "MODIFIED", obj)

        assert result.deleted >= 1
        assert {name for _, _, name in mesh_objects(store)} == {"acorn-myapp-route-web"}

    async def test_deleted_trigger_prunes_objects_of_a_failed_pass(self, store, reconciler, routed):
        await reconciler.reconcile(ResourceKind.INGRESS, "ADDED", routed)

        store.fail_apply.add(("AuthorizationPolicy", "acorn-myapp-route-web"))
        obj = route_to(store, "web", {"name": "http"})
        with pytest.raises(StoreError):
            await reconciler.reconcile(ResourceKind.INGRESS, "MODIFIED", obj)

        await reconciler.reconcile(ResourceKind.INGRESS, DELETED, obj)

        assert mesh_objects(store) == set()


class TestCleanup:
    """Test cleanup of a deleted ingress."""

    async def test_deleting_ingress_cleans_up_other_namespaces(self, store, config, reconciler):
        """Objects in an alias target namespace are found by re-running synthesis."""
        store.add(
            service("web", "app-ns", [{"port": 80}], service_type="ExternalName", external_name="api.backend.svc.cluster.local")
        )
        store.add(service("api", "backend", [{"port": 80, "targetPort": 8000}], selector={"app": "api"}))
        store.add(
            {
                "apiVersion": "security.istio.io/v1beta1",
                "kind": "PeerAuthentication",
                "metadata": {"name": "acorn-myapp-route-api", "namespace": "backend"},
            }
        )
        obj = store.add(ingress("route", "app-ns", [("web", {"number": 80})]))
        obj["metadata"]["deletionTimestamp"] = "2024-01-01T00:00:00Z"

        await reconciler.reconcile(ResourceKind.INGRESS, "MODIFIED", obj)

        assert (ResourceKind.PEER_AUTHENTICATION, "backend", "acorn-myapp-route-api") in store.deleted
        assert (ResourceKind.AUTHORIZATION_POLICY, "backend", "acorn-myapp-route-api") in store.deleted

    async def test_unresolvable_ingress_falls_back_to_recorded_objects(self, store, reconciler):
        store.add(service("web", "app-ns", [{"port": 80}], selector={"app": "web"}))
        obj = store.add(ingress("route", "app-ns", [("web", {"number": 80})]))
        await reconciler.reconcile(ResourceKind.INGRESS, "ADDED", obj)
        assert len(mesh_objects(store)) == 2

        store.add(service("web", "app-ns", [{"port": 80}], service_type="ExternalName", external_name="example.com"))
        obj = store.find(ResourceKind.INGRESS, "app-ns", "route")
        obj["metadata"]["deletionTimestamp"] = "2024-01-01T00:00:00Z"
        result = await reconciler.reconcile(ResourceKind.INGRESS, "MODIFIED", obj)

        assert result.deleted == 2
        assert mesh_objects(store) == set()

    async def test_ingress_that_stops_matching_is_pruned(self, store, reconciler):
        store.add(service("web", "app-ns", [{"port": 80}], selector={"app": "web"}))
        obj = store.add(ingress("route", "app-ns", [("web", {"number": 80})]))
        await reconciler.reconcile(ResourceKind.INGRESS, "ADDED", obj)

        obj = store.find(ResourceKind.INGRESS, "app-ns", "route")
        obj["metadata"]["labels"] = {}
        await reconciler.reconcile(ResourceKind.INGRESS, "MODIFIED", obj)

        assert mesh_objects(store) == set()


class TestActions:
    """Test routes that act on the store directly."""

    async def test_project_namespace_gets_injection_label(self, store, reconciler):
        obj = store.add(namespace("proj", {"acorn.io/project": "true"}))

        await reconciler.reconcile(ResourceKind.NAMESPACE, "ADDED", obj)

        assert store.find(ResourceKind.NAMESPACE, None, "proj")["metadata"]["labels"]["istio-injection"] == "enabled"

    async def test_deleted_namespace_is_left_alone(self, store, reconciler):
        obj = store.add(namespace("proj", {"acorn.io/project": "true"}))

        await reconciler.reconcile(ResourceKind.NAMESPACE, DELETED, obj)

        assert store.updated == []
