"""
Image build orchestration for dflow.

The demo images are built in dependency order; each step consumes the image tagged by
the previous one, so the first failure aborts the whole sequence:

    1. application and database images (docker-compose build)
    2. proxy base image
    3. proxy runtime image, layered on the base
    4. frontend build-tool image
    5. application image, built with s2i from the frontend sources on the build-tool
       image and shipped on the proxy runtime image

The development variant runs steps 4 and 5 only, with `DEV_MODE=true` and a separate tag.
"""

import os
import docker
import docker.errors
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional, Sequence
from docker import DockerClient
from dflow.app.config import Settings
from dflow.app.core.logger import get_logger
from dflow.app.core.shell import PlatformError, ensure_tools, run_command, split_command

logger = get_logger(__name__)


class BuildError(RuntimeError):
    """ A build step failed; later steps were not run. """

    def __init__(self, step: str, cause: Exception) -> None:
        super().__init__(f"Build step '{step}' failed: {cause}")
        self.step = step


@dataclass(frozen=True)
class BuildStep:
    name: str
    command: List[str]


class BuildOrchestrator:
    """
    Runs the image build steps for the dflow demo.

    Args:
        settings (Settings): Effective configuration (tools, contexts and tags).
        environment (Mapping[str, str]): Environment handed to the build tools.
        runner (Callable): Command runner, `run_command` by default.
        docker_client (Optional[DockerClient]): Docker SDK client used by `lint()`.
    """

    def __init__(self, settings: Settings, environment: Mapping[str, str],
                 runner: Callable[..., str] = run_command,
                 docker_client: Optional[DockerClient] = None) -> None:
        self.settings = settings
        self.environment = dict(environment)
        self.runner = runner
        self._docker_client = docker_client

    def _path(self, relative: str) -> str:
        return os.path.join(self.settings.build_root, relative)

    def check_prerequisites(self) -> None:
        """
        Raises:
            PreconditionError: If docker, compose or s2i is not on PATH.
        """
        ensure_tools(self.settings.docker_command, self.settings.compose_command,
                     self.settings.s2i_command)

    def _builder_step(self) -> BuildStep:
        return BuildStep("frontend build-tool image", split_command(self.settings.docker_command) + [
            "build", "-t", self.settings.builder_image, self._path(self.settings.builder_context)])

    def _app_step(self, dev_mode: bool) -> BuildStep:
        s = self.settings
        image = s.app_dev_image if dev_mode else s.app_image
        return BuildStep(
            "development application image" if dev_mode else "application image",
            split_command(s.s2i_command) + [
                "build", "-e", f"DEV_MODE={'true' if dev_mode else 'false'}",
                "--runtime-image", s.proxy_runtime_image,
                "--runtime-artifact", s.runtime_artifact,
                self._path(s.frontend_source), s.builder_image, image,
            ])

    def build_steps(self, services: Sequence[str] = ()) -> List[BuildStep]:
        s = self.settings
        docker_cmd = split_command(s.docker_command)
        return [
            BuildStep("compose images", split_command(s.compose_command) + [
                "-p", s.project_name, "build", *services]),
            BuildStep("proxy base image", docker_cmd + [
                "build", "-t", s.proxy_base_image, self._path(s.proxy_base_context)]),
            BuildStep("proxy runtime image", docker_cmd + [
                "build", "--build-arg", f"BASE_IMAGE={s.proxy_base_image}",
                "-t", s.proxy_runtime_image, self._path(s.proxy_runtime_context)]),
            self._builder_step(),
            self._app_step(dev_mode=False),
        ]

    def dev_build_steps(self) -> List[BuildStep]:
        return [self._builder_step(), self._app_step(dev_mode=True)]

    def _run(self, steps: Sequence[BuildStep]) -> None:
        for number, step in enumerate(steps, start=1):
            logger.info(f"🔧 [{number}/{len(steps)}] Building {step.name}")
            try:
                self.runner(step.command, env=self.environment)
            except PlatformError as e:
                raise BuildError(step.name, e) from e
        logger.info("✅ Build complete.")

    def build(self, services: Sequence[str] = ()) -> None:
        """
        Build every image of the demo.

        Args:
            services (Sequence[str]): Compose services to build in step 1; all when empty.

        Raises:
            PreconditionError: If a required tool is missing.
            BuildError: On the first failing step.
        """
        self.check_prerequisites()
        self._run(self.build_steps(services))

    def build_dev(self) -> None:
        """ Build the development variant of the application image. """
        self.check_prerequisites()
        self._run(self.dev_build_steps())

    def lint(self) -> str:
        """
        Lint the frontend sources inside the build-tool image.

        Returns:
            str: Linter output.

        Raises:
            PlatformError: If Docker is unreachable or the linter reports problems.
        """
        source = os.path.abspath(self._path(self.settings.frontend_source))
        logger.info(f"Linting {source}")
        try:
            client = self._docker_client or docker.from_env()
            output = client.containers.run(
                self.settings.builder_image,
                ["npm", "run", "lint"],
                volumes={source: {"bind": "/opt/app-root/src", "mode": "rw"}},
                working_dir="/opt/app-root/src",
                remove=True,
            )
        except docker.errors.ContainerError as e:
            stderr = e.stderr.decode("utf-8", errors="replace") if e.stderr else ""
            raise PlatformError(f"Lint failed with exit status {e.exit_status}: {stderr}") from e
        except docker.errors.DockerException as e:
            raise PlatformError(f"Docker error while linting: {e}") from e
        return output.decode("utf-8", errors="replace") if output else ""
