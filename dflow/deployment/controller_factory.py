"""
Factory module for creating preconfigured dflow controllers.

This ensures both entry points wire platforms, barriers and build tooling the same way.
"""

from typing import Optional
from dflow.app.config import Settings, build_environment
from dflow.app.core.controller.barrier import (
    Barrier, ConfirmationBarrier, ImmediateBarrier, ReplicaPollBarrier, SequentialBarrier)
from dflow.app.core.controller.build_orchestrator import BuildOrchestrator
from dflow.app.core.controller.container_platform import (
    ComposePlatform, ContainerPlatform, OpenShiftPlatform)
from dflow.app.core.controller.lifecycle_controller import LifecycleController
from dflow.app.core.controller.service_registry import ServiceRegistry

registry = ServiceRegistry()


def create_compose_platform(settings: Settings) -> ComposePlatform:
    return ComposePlatform(settings, build_environment(settings, registry.all_services()))


def create_openshift_platform(settings: Settings) -> OpenShiftPlatform:
    return OpenShiftPlatform(settings, build_environment(settings, registry.all_services()))


def create_build_orchestrator(settings: Settings) -> BuildOrchestrator:
    return BuildOrchestrator(settings, build_environment(settings, registry.all_services()))


def create_lifecycle_controller(settings: Settings,
                                platform: Optional[ContainerPlatform] = None) -> LifecycleController:
    """
    Create a LifecycleController for the platform selected by `settings.lifecycle_platform`.

    The scale-down barrier always polls the platform; when `settings.interactive` is
    set, it additionally waits for the operator, as does the wallet reset checkpoint.

    Args:
        settings (Settings): Effective configuration.
        platform (Optional[ContainerPlatform]): Platform to use instead of the configured one.

    Returns:
        LifecycleController: Configured controller instance.
    """
    if platform is None:
        if settings.lifecycle_platform == "compose":
            platform = create_compose_platform(settings)
        else:
            platform = create_openshift_platform(settings)
    poll = ReplicaPollBarrier(platform, settings.barrier_timeout, settings.barrier_poll_interval)
    confirmation: Barrier = ConfirmationBarrier() if settings.interactive else ImmediateBarrier()
    scale_down_barrier: Barrier = SequentialBarrier(poll, confirmation) if settings.interactive else poll

    return LifecycleController(
        platform=platform,
        scale_down_barrier=scale_down_barrier,
        confirmation_barrier=confirmation,
        wallet_name_env_var=settings.wallet_name_env_var,
        wallet_db_service=settings.wallet_db_service,
        database_user=settings.postgresql_admin_user,
        replicas=settings.scale_up_replicas,
    )
