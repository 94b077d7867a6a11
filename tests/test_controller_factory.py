"""
Controller factory wiring tests.
"""

from dflow.app.config import resolve_settings
from dflow.app.core.controller.barrier import (
    ConfirmationBarrier, ImmediateBarrier, ReplicaPollBarrier, SequentialBarrier)
from dflow.app.core.controller.container_platform import ComposePlatform, OpenShiftPlatform
from dflow.deployment.controller_factory import create_lifecycle_controller

from conftest import FakePlatform


class TestCreateLifecycleController:
    def test_non_interactive(self, settings):
        platform = FakePlatform()

        controller = create_lifecycle_controller(settings, platform=platform)

        assert controller.platform is platform
        assert isinstance(controller.scale_down_barrier, ReplicaPollBarrier)
        assert isinstance(controller.confirmation_barrier, ImmediateBarrier)
        assert controller.database_user == "postgres"

    def test_interactive(self):
        settings = resolve_settings(overrides={"DEPLOYMENT_ENV": "dev"})

        controller = create_lifecycle_controller(settings, platform=FakePlatform())

        assert isinstance(controller.scale_down_barrier, SequentialBarrier)
        assert isinstance(controller.confirmation_barrier, ConfirmationBarrier)

    def test_defaults_to_openshift(self, settings):
        controller = create_lifecycle_controller(settings)

        assert isinstance(controller.platform, OpenShiftPlatform)
        assert controller.platform.environment["DEPLOYMENT_ENV"] == "dev"
        assert controller.platform.environment["BCREG_AGENT_PORT"] == "5001"

    def test_compose_platform_selected_by_settings(self):
        settings = resolve_settings(overrides={"LIFECYCLE_PLATFORM": "compose", "INTERACTIVE": "false"})

        controller = create_lifecycle_controller(settings)

        assert isinstance(controller.platform, ComposePlatform)
        assert controller.scale_down_barrier.platform is controller.platform

    def test_recycle_end_to_end(self, settings):
        platform = FakePlatform(running=["bcreg-agent", "worksafe-agent"])
        controller = create_lifecycle_controller(settings, platform=platform)

        result = controller.recycle(["bcreg-agent", "worksafe-agent"])

        assert result.ok
        assert platform.replicas == {"bcreg-agent": 1, "worksafe-agent": 1}
