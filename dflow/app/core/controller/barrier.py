"""
Barriers used between lifecycle phases.

A barrier blocks until every member of a batch reaches a condition, or until the
operator acknowledges a checkpoint. The lifecycle controller receives its barriers
from the controller factory, so tests can substitute `ImmediateBarrier`.
"""

import time
from abc import ABC, abstractmethod
from typing import Callable, Sequence
from dflow.app.core.controller.container_platform import ContainerPlatform
from dflow.app.core.logger import get_logger

logger = get_logger(__name__)


class BarrierTimeout(RuntimeError):
    """ A polling barrier did not complete within its timeout. """

    def __init__(self, message: str, pending: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.pending = list(pending)


class Barrier(ABC):

    @abstractmethod
    def wait(self, services: Sequence[str], message: str) -> None:
        """
        Block until the barrier condition holds for `services`.

        Important:
            This method must be implemented by subclasses.
        """
        raise NotImplementedError("wait() must be implemented by subclasses.")


class ImmediateBarrier(Barrier):
    """ Barrier that never blocks. """

    def wait(self, services: Sequence[str], message: str) -> None:
        logger.debug(f"{message} (not waiting)")


class ConfirmationBarrier(Barrier):
    """
    Barrier that waits for the operator to press enter.

    Args:
        prompt (Callable[[str], str]): Input function, `input` by default.
    """

    def __init__(self, prompt: Callable[[str], str] = input) -> None:
        self.prompt = prompt

    def wait(self, services: Sequence[str], message: str) -> None:
        self.prompt(f"{message}, press enter to continue ...")


class ReplicaPollBarrier(Barrier):
    """
    Barrier that polls the platform until every service reports zero running replicas.

    Args:
        platform (ContainerPlatform): Platform queried for replica counts.
        timeout (float): Maximum seconds to wait.
        interval (float): Seconds between polls.
        sleep (Callable[[float], None]): Sleep function.
        clock (Callable[[], float]): Monotonic clock.
    """

    def __init__(self, platform: ContainerPlatform, timeout: float, interval: float,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic) -> None:
        self.platform = platform
        self.timeout = timeout
        self.interval = interval
        self.sleep = sleep
        self.clock = clock

    def _still_running(self, services: Sequence[str]):
        return [s for s in services if self.platform.replica_count(s) > 0]

    def wait(self, services: Sequence[str], message: str) -> None:
        logger.info(message)
        deadline = self.clock() + self.timeout
        pending = self._still_running(services)
        while pending:
            if self.clock() >= deadline:
                raise BarrierTimeout(
                    f"Timed out after {self.timeout:g}s waiting for: {', '.join(pending)}", pending)
            logger.debug(f"  Still running: {', '.join(pending)}")
            self.sleep(self.interval)
            pending = self._still_running(pending)
        logger.info("  All services scaled down")


class SequentialBarrier(Barrier):
    """ Runs several barriers one after the other. """

    def __init__(self, *barriers: Barrier) -> None:
        self.barriers = barriers

    def wait(self, services: Sequence[str], message: str) -> None:
        for barrier in self.barriers:
            barrier.wait(services, message)
