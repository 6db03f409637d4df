"""Reconcilers for resources whose status is read from registry metadata.

ClusterStore, ClusterStack, ClusterLifecycle, ClusterBuildpack and
Extension all follow the same shape: derive a keychain from the resource's
service account, ask a reader for the remote metadata and publish it with a
Ready condition. A failed read replaces the status with Ready=False.
"""

import logging

from imagewright.credentials import SecretRef
from imagewright.models.builder import (
    ClusterBuildpack,
    ClusterBuildpackStatus,
    ClusterLifecycle,
    ClusterLifecycleStatus,
    ClusterStack,
    ClusterStackStatus,
    ClusterStore,
    ClusterStoreStatus,
    Extension,
    ExtensionStatus,
    StoreImage,
)

from .base import StatusReconciler, ready_status

logger = logging.getLogger(__name__)


def secret_ref_for(service_account_ref):
    if service_account_ref is None:
        return SecretRef()
    return SecretRef(
        service_account=service_account_ref.name,
        namespace=service_account_ref.namespace,
    )


class RemoteMetadataReconciler(StatusReconciler):
    status_class = None

    def __init__(self, store, keychain_factory, reader):
        super().__init__(store)
        self.keychain_factory = keychain_factory
        self.reader = reader

    def secret_ref(self, resource):
        return secret_ref_for(resource.spec.serviceAccountRef)

    def read_status(self, resource, keychain):
        raise NotImplementedError

    def reconcile_resource(self, resource, ctx):
        try:
            keychain = self.keychain_factory.keychain_for_secret_ref(
                self.secret_ref(resource)
            )
            resource.status = self.read_status(resource, keychain)
        except Exception as e:
            logger.warning(f"Failed to read {resource.crd_kind} {resource.key}: {e}")
            resource.status = ready_status(self.status_class, e)
            raise


class ClusterStoreReconciler(RemoteMetadataReconciler):
    resource_class = ClusterStore
    status_class = ClusterStoreStatus

    def read_status(self, store, keychain):
        buildpacks = self.reader.read(keychain, store.spec.sources)
        return ready_status(ClusterStoreStatus, buildpacks=buildpacks)


class ClusterStackReconciler(RemoteMetadataReconciler):
    resource_class = ClusterStack
    status_class = ClusterStackStatus

    def read_status(self, stack, keychain):
        resolved = self.reader.read(keychain, stack.spec)
        return ready_status(ClusterStackStatus, **resolved.model_dump())


class ClusterLifecycleReconciler(RemoteMetadataReconciler):
    resource_class = ClusterLifecycle
    status_class = ClusterLifecycleStatus

    def read_status(self, lifecycle, keychain):
        resolved = self.reader.read(keychain, lifecycle.spec)
        return ready_status(ClusterLifecycleStatus, **resolved.model_dump())


class ClusterBuildpackReconciler(RemoteMetadataReconciler):
    resource_class = ClusterBuildpack
    status_class = ClusterBuildpackStatus

    def read_status(self, buildpack, keychain):
        buildpacks = self.reader.read(keychain, [StoreImage(image=buildpack.spec.image)])
        return ready_status(ClusterBuildpackStatus, buildpacks=buildpacks)


class ExtensionReconciler(RemoteMetadataReconciler):
    resource_class = Extension
    status_class = ExtensionStatus

    def secret_ref(self, extension):
        return SecretRef(
            service_account=extension.spec.serviceAccountName,
            namespace=extension.namespace or "",
        )

    def read_status(self, extension, keychain):
        extensions = self.reader.read(keychain, [StoreImage(image=extension.spec.image)])
        return ready_status(ExtensionStatus, extensions=extensions)
