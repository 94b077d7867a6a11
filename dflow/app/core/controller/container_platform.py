"""
Container platform interfaces and implementations for dflow.

This module defines the abstract base class `ContainerPlatform`, which specifies the
operations the lifecycle controller needs from the platform running the demo:
scaling a service, reporting its running replica count, locating a running instance,
executing a command in it and reading its environment.

Two concrete implementations are provided:

    - `ComposePlatform` drives a local docker-compose project. Scaling and the
      project-wide commands (up, stop, down, logs) go through the compose CLI; queries
      about running containers use the Docker SDK.
    - `OpenShiftPlatform` drives an OpenShift namespace through the `oc` CLI.

Note:
    The platform is the source of truth for service state. Implementations never cache
    replica counts or instance names between calls.
"""

import httpx
import docker
import docker.errors
from typing import Dict, List, Mapping, Optional, Sequence, Tuple
from abc import ABC, abstractmethod
from docker import DockerClient
from dflow.app.config import Settings
from dflow.app.core.logger import get_logger
from dflow.app.core.shell import PlatformError, run_command, split_command

logger = get_logger(__name__)


class WalletLookupError(LookupError):
    """ A value could not be read from a service's live environment. """


class ContainerPlatform(ABC):
    """
    Abstract base class defining the platform interface used by the lifecycle controller.

    Responsibilities:

    - State transitions:
        - `scale(service, replicas)`: Request a replica count for a service.
    - State queries:
        - `replica_count(service)`: Number of running instances of a service.
        - `find_instance(service)`: Name of one running instance, or None.
        - `list_instances()`: Running instances, for display.
    - Instance access:
        - `exec_in(instance, command)`: Run a command inside a running instance.
        - `read_environment(service, variable)`: Read a variable from a running instance.

    Subclasses must implement these methods using the underlying tooling.
    """

    @abstractmethod
    def scale(self, service: str, replicas: int) -> None:
        """
        Request `replicas` running instances of `service`.

        Important:
            This method must be implemented by subclasses.

        Raises:
            PlatformError: If the platform rejects the request.
        """
        raise NotImplementedError("scale() must be implemented by subclasses.")

    @abstractmethod
    def replica_count(self, service: str) -> int:
        """
        Return the number of running instances of `service`.

        Important:
            This method must be implemented by subclasses.
        """
        raise NotImplementedError("replica_count() must be implemented by subclasses.")

    @abstractmethod
    def find_instance(self, service: str) -> Optional[str]:
        """
        Return the name of a running instance of `service`, or None if none is running.

        Important:
            This method must be implemented by subclasses.
        """
        raise NotImplementedError("find_instance() must be implemented by subclasses.")

    @abstractmethod
    def exec_in(self, instance: str, command: Sequence[str]) -> str:
        """
        Execute `command` inside a running instance and return its output.

        Important:
            This method must be implemented by subclasses.

        Raises:
            PlatformError: If the command fails.
        """
        raise NotImplementedError("exec_in() must be implemented by subclasses.")

    @abstractmethod
    def list_instances(self) -> List[str]:
        """
        Return one display line per instance known to the platform.

        Important:
            This method must be implemented by subclasses.
        """
        raise NotImplementedError("list_instances() must be implemented by subclasses.")

    def read_environment(self, service: str, variable: str) -> str:
        """
        Read an environment variable from a running instance of `service`.

        Args:
            service (str): Service name.
            variable (str): Environment variable name.

        Returns:
            str: The variable's value.

        Raises:
            WalletLookupError: If no instance is running, the command fails or the variable is empty.
        """
        instance = self.find_instance(service)
        if instance is None:
            raise WalletLookupError(f"No running instance of '{service}' to read {variable} from")
        try:
            value = self.exec_in(instance, ["printenv", variable]).strip()
        except PlatformError as e:
            raise WalletLookupError(f"Could not read {variable} from '{service}': {e}") from e
        if not value:
            raise WalletLookupError(f"{variable} is not set on '{service}'")
        return value

    def check_service_ready(self, service: str, url: str) -> Tuple[bool, str]:
        """
        Check whether a service answers its health endpoint.

        Sends an HTTP GET request to `url`; any 200 response counts as ready.

        Args:
            service (str): Service name, used in messages.
            url (str): Full URL of the health endpoint.

        Returns:
            Tuple: A tuple where the first element is True if the service is ready, False otherwise.
                   The second element is a message string summarizing the issue.
        """
        try:
            response = httpx.get(url, timeout=2.0)
            if response.status_code == 404:
                return False, f"'{service}' does not expose {url} (404 Not Found)"
            if response.status_code != 200:
                return False, f"Received status code {response.status_code}"
            return True, f"'{service}' is ready"
        except httpx.RequestError as e:
            # Covers connection errors, DNS issues, timeouts, etc.
            return False, f"'{service}' is not reachable: {e}"


class ComposePlatform(ContainerPlatform):
    """
    Container platform backed by a local docker-compose project.

    Args:
        settings (Settings): Effective configuration.
        environment (Mapping[str, str]): Environment handed to the compose CLI.
        docker_client (Optional[DockerClient]): Docker SDK client; created from the
            environment on first use when not given.
    """

    def __init__(self, settings: Settings, environment: Mapping[str, str],
                 docker_client: DockerClient = None) -> None:
        self.settings = settings
        self.environment = dict(environment)
        self._docker_client = docker_client

    @property
    def docker_client(self) -> DockerClient:
        if self._docker_client is None:
            try:
                self._docker_client = docker.from_env()
            except docker.errors.DockerException as e:
                raise PlatformError(f"Docker Engine unreachable: {e}") from e
        return self._docker_client

    def _compose(self, *args: str, capture: bool = False) -> str:
        command = split_command(self.settings.compose_command) + ["-p", self.settings.project_name]
        return run_command(command + list(args), env=self.environment, capture=capture)

    def _containers(self, service: str):
        labels = [f"com.docker.compose.project={self.settings.project_name}",
                  f"com.docker.compose.service={service}"]
        try:
            return self.docker_client.containers.list(filters={"label": labels, "status": "running"})
        except docker.errors.APIError as e:
            raise PlatformError(f"Docker API error while listing '{service}': {e}") from e

    def up(self, services: Sequence[str] = ()) -> None:
        logger.info(f"🚀 Starting {', '.join(services) if services else 'all services'}")
        self._compose("up", "-d", *services)

    def stop(self) -> None:
        logger.info("Stopping all services")
        self._compose("stop")

    def down(self) -> None:
        logger.info("Removing all containers and volumes")
        self._compose("down", "-v")

    def logs(self, services: Sequence[str] = ()) -> None:
        self._compose("logs", "-f", *services)

    def scale(self, service: str, replicas: int) -> None:
        logger.info(f"  Scaling '{service}' to {replicas}")
        self._compose("up", "-d", "--no-deps", "--scale", f"{service}={replicas}", service)

    def replica_count(self, service: str) -> int:
        return len(self._containers(service))

    def find_instance(self, service: str) -> Optional[str]:
        containers = self._containers(service)
        return containers[0].name if containers else None

    def exec_in(self, instance: str, command: Sequence[str]) -> str:
        try:
            container = self.docker_client.containers.get(instance)
            exit_code, output = container.exec_run(list(command))
        except docker.errors.NotFound as e:
            raise PlatformError(f"Container '{instance}' not found") from e
        except docker.errors.APIError as e:
            raise PlatformError(f"Docker API error: {e}") from e
        text = output.decode("utf-8", errors="replace") if output else ""
        if exit_code != 0:
            raise PlatformError(f"'{' '.join(command)}' failed in '{instance}' ({exit_code}): {text.strip()}")
        return text

    def read_environment(self, service: str, variable: str) -> str:
        """ Read `variable` from the container configuration instead of exec'ing printenv. """
        containers = self._containers(service)
        if not containers:
            raise WalletLookupError(f"No running instance of '{service}' to read {variable} from")
        env: Dict[str, str] = {}
        for entry in containers[0].attrs.get("Config", {}).get("Env") or []:
            key, _, value = entry.partition("=")
            env[key] = value
        if not env.get(variable):
            raise WalletLookupError(f"{variable} is not set on '{service}'")
        return env[variable]

    def list_instances(self) -> List[str]:
        try:
            containers = self.docker_client.containers.list(
                filters={"label": f"com.docker.compose.project={self.settings.project_name}"})
        except docker.errors.APIError as e:
            raise PlatformError(f"Docker API error: {e}") from e
        return [f"{c.name}\t{c.status}" for c in containers]


class OpenShiftPlatform(ContainerPlatform):
    """
    Container platform backed by an OpenShift namespace, driven through `oc`.

    Services map to deployment configs of the same name; their pods carry the
    `deploymentconfig=<service>` label.

    Args:
        settings (Settings): Effective configuration; `settings.namespace` selects the project.
        environment (Mapping[str, str]): Environment handed to `oc`.
    """

    def __init__(self, settings: Settings, environment: Mapping[str, str]) -> None:
        self.settings = settings
        self.environment = dict(environment)

    def _oc(self, *args: str, capture: bool = True) -> str:
        command = split_command(self.settings.oc_command) + ["-n", self.settings.namespace]
        return run_command(command + list(args), env=self.environment, capture=capture)

    def _running_pods(self, service: str) -> List[str]:
        output = self._oc("get", "pods", "-l", f"deploymentconfig={service}",
                          "--field-selector=status.phase=Running", "-o", "name")
        return [line.split("/", 1)[-1] for line in output.splitlines() if line.strip()]

    def scale(self, service: str, replicas: int) -> None:
        logger.info(f"  Scaling '{service}' to {replicas} in {self.settings.namespace}")
        self._oc("scale", f"dc/{service}", f"--replicas={replicas}")

    def replica_count(self, service: str) -> int:
        return len(self._running_pods(service))

    def find_instance(self, service: str) -> Optional[str]:
        pods = self._running_pods(service)
        return pods[0] if pods else None

    def exec_in(self, instance: str, command: Sequence[str]) -> str:
        return self._oc("exec", instance, "--", *command)

    def list_instances(self) -> List[str]:
        return self._oc("get", "pods").splitlines()
