"""
Shared fixtures: an in-memory container platform and clean settings.
"""

from typing import Dict, List, Optional, Sequence, Set, Tuple

import pytest

from dflow.app.config import resolve_settings
from dflow.app.core.shell import PlatformError
from dflow.app.core.controller.barrier import ImmediateBarrier
from dflow.app.core.controller.container_platform import ContainerPlatform
from dflow.app.core.controller.lifecycle_controller import LifecycleController


class FakePlatform(ContainerPlatform):
    """
    In-memory platform.

    Services listed in `running` start with one replica. Environment reads only
    succeed while the service has a running replica, like on a real platform.
    """

    def __init__(self, running: Sequence[str] = (), env: Optional[Dict[str, Dict[str, str]]] = None) -> None:
        self.replicas: Dict[str, int] = {name: 1 for name in running}
        self.env = env or {}
        self.calls: List[Tuple] = []
        self.fail_scale: Set[str] = set()
        self.fail_exec: Set[str] = set()
        self.known: Optional[Set[str]] = None

    def scale(self, service: str, replicas: int) -> None:
        self.calls.append(("scale", service, replicas))
        if service in self.fail_scale or (self.known is not None and service not in self.known):
            raise PlatformError(f"deploymentconfig '{service}' not found")
        self.replicas[service] = replicas

    def replica_count(self, service: str) -> int:
        self.calls.append(("replica_count", service))
        return self.replicas.get(service, 0)

    def find_instance(self, service: str) -> Optional[str]:
        self.calls.append(("find_instance", service))
        return f"{service}-1" if self.replicas.get(service, 0) > 0 else None

    def exec_in(self, instance: str, command: Sequence[str]) -> str:
        self.calls.append(("exec_in", instance, list(command)))
        service = instance.rsplit("-", 1)[0]
        if command[0] == "printenv":
            return self.env.get(service, {}).get(command[1], "")
        statement = command[-1]
        for marker in self.fail_exec:
            if marker in statement:
                raise PlatformError(f"psql failed: {marker}")
        return "DROP DATABASE"

    def list_instances(self) -> List[str]:
        self.calls.append(("list_instances",))
        return [f"{name}-1\tRunning" for name, count in self.replicas.items() if count > 0]

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]


class StuckPlatform(FakePlatform):
    """ Scale-down requests for `stuck` services are accepted but never take effect. """

    def __init__(self, stuck: Sequence[str], **kwargs) -> None:
        super().__init__(**kwargs)
        self.stuck = set(stuck)

    def scale(self, service: str, replicas: int) -> None:
        before = self.replicas.get(service, 0)
        super().scale(service, replicas)
        if replicas == 0 and service in self.stuck:
            self.replicas[service] = before


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


class RecordingBarrier(ImmediateBarrier):

    def __init__(self) -> None:
        self.waits: List[Tuple[List[str], str]] = []

    def wait(self, services, message) -> None:
        self.waits.append((list(services), message))


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """ Keep the developer's environment and working directory out of settings resolution. """
    for key in ("LOG_LEVEL", "PROJECT_NAME", "DEPLOYMENT_ENV", "INTERACTIVE", "WEB_HTTP_PORT",
                "LIFECYCLE_PLATFORM"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings():
    return resolve_settings(overrides={"DEPLOYMENT_ENV": "dev", "INTERACTIVE": "false"})


@pytest.fixture
def platform():
    return FakePlatform(
        running=["wallet-db", "bcreg-agent", "worksafe-agent"],
        env={
            "bcreg-agent": {"WALLET_NAME": "bcreg_wallet"},
            "worksafe-agent": {"WALLET_NAME": "worksafe_wallet"},
        },
    )


@pytest.fixture
def barrier():
    return RecordingBarrier()


@pytest.fixture
def controller(platform, barrier):
    return LifecycleController(
        platform=platform,
        scale_down_barrier=barrier,
        confirmation_barrier=barrier,
    )
