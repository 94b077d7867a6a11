"""
Lifecycle controller for dflow.

This module defines the `LifecycleController`, which composes platform state
transitions into the bulk operations offered by the lifecycle entry point:

- scale up / scale down a set of services
- recycle a set of services (scale down, wait, scale up)
- reset the wallets of a set of issuer services

The controller keeps no state of its own: it issues transition requests and relies on
barriers to observe the platform. Failures of individual services are recorded in a
`BatchResult` and do not stop the remaining services from being processed.
"""

from dataclasses import dataclass, field
from typing import List, Sequence, Tuple
from dflow.app.core.logger import get_logger
from dflow.app.core.shell import PlatformError
from dflow.app.core.controller.barrier import Barrier, BarrierTimeout
from dflow.app.core.controller.container_platform import ContainerPlatform, WalletLookupError
from dflow.app.core.controller.service_registry import require_targets

logger = get_logger(__name__)


@dataclass(frozen=True)
class OperationResult:
    service: str
    operation: str
    success: bool
    message: str = ""


@dataclass
class BatchResult:
    """ Outcome of one lifecycle operation across a set of services. """
    operation: str
    results: List[OperationResult] = field(default_factory=list)

    def record(self, service: str, operation: str, success: bool, message: str = "") -> None:
        self.results.append(OperationResult(service, operation, success, message))

    def extend(self, other: "BatchResult") -> None:
        self.results.extend(other.results)

    @property
    def failures(self) -> List[OperationResult]:
        return [r for r in self.results if not r.success]

    @property
    def ok(self) -> bool:
        return not self.failures

    def succeeded(self, operation: str) -> List[str]:
        return [r.service for r in self.results if r.operation == operation and r.success]


def drop_database_statement(name: str) -> str:
    """ SQL dropping the database that stores a wallet. """
    return 'DROP DATABASE IF EXISTS "{}";'.format(name.replace('"', '""'))


class LifecycleController:
    """
    Core controller for bulk service lifecycle operations.

    Args:
        platform (ContainerPlatform): Platform receiving the transition requests.
        scale_down_barrier (Barrier): Blocks until scaled-down services have stopped.
        confirmation_barrier (Barrier): Checkpoint after wallets are reset.
        wallet_name_env_var (str): Variable holding an issuer's wallet name.
        wallet_db_service (str): Service running the wallet database.
        database_user (str): Database user issuing the drop statements.
        replicas (int): Replica count used when scaling up.
    """

    def __init__(self, platform: ContainerPlatform,
                 scale_down_barrier: Barrier,
                 confirmation_barrier: Barrier,
                 wallet_name_env_var: str = "WALLET_NAME",
                 wallet_db_service: str = "wallet-db",
                 database_user: str = "postgres",
                 replicas: int = 1) -> None:
        self.platform = platform
        self.scale_down_barrier = scale_down_barrier
        self.confirmation_barrier = confirmation_barrier
        self.wallet_name_env_var = wallet_name_env_var
        self.wallet_db_service = wallet_db_service
        self.database_user = database_user
        self.replicas = replicas

    def _scale(self, services: Sequence[str], replicas: int, operation: str) -> BatchResult:
        result = BatchResult(operation)
        for service in services:
            try:
                self.platform.scale(service, replicas)
                result.record(service, operation, True)
            except PlatformError as e:
                logger.error(f"  Failed to scale '{service}' to {replicas}: {e}")
                result.record(service, operation, False, str(e))
        return result

    def scale_up(self, services: Sequence[str]) -> BatchResult:
        """ Request `replicas` running instances of every service. """
        services = require_targets(services, "scaleup")
        logger.info(f"🚀 Scaling up: {', '.join(services)}")
        return self._scale(services, self.replicas, "scaleup")

    def scale_down(self, services: Sequence[str]) -> BatchResult:
        """ Request zero running instances of every service. """
        services = require_targets(services, "scaledown")
        logger.info(f"Scaling down: {', '.join(services)}")
        return self._scale(services, 0, "scaledown")

    def _scale_down_and_wait(self, services: Sequence[str], result: BatchResult) -> List[str]:
        """
        Scale services down and wait for them to stop.

        A barrier timeout is recorded as a failure of every service still running
        rather than raised, so callers can still scale the services back up.

        Returns:
            List[str]: Services confirmed stopped; empty when the wait timed out.
        """
        down = self.scale_down(services)
        result.extend(down)
        stopped = down.succeeded("scaledown")
        try:
            self.scale_down_barrier.wait(stopped, "Waiting for all services to scale down")
        except BarrierTimeout as e:
            logger.error(f"❌ {e}")
            for service in e.pending or stopped:
                result.record(service, "wait-scaledown", False, str(e))
            return []
        return stopped

    def recycle(self, services: Sequence[str]) -> BatchResult:
        """
        Scale services down, wait until none is running, then scale them back up.

        Returns:
            BatchResult: Scale-down and scale-up outcomes for every service.
        """
        services = require_targets(services, "recycle")
        result = BatchResult("recycle")
        self._scale_down_and_wait(services, result)
        result.extend(self.scale_up(services))
        if result.ok:
            logger.info("✅ Recycle complete.")
        return result

    def discover_wallets(self, services: Sequence[str], result: BatchResult) -> List[Tuple[str, str]]:
        """
        Read the wallet name of every service from its running instance.

        Services whose wallet cannot be found are logged, recorded as failed and skipped.

        Returns:
            List[Tuple[str, str]]: (service, wallet name) pairs.
        """
        wallets = []
        for service in services:
            try:
                name = self.platform.read_environment(service, self.wallet_name_env_var)
            except (WalletLookupError, PlatformError) as e:
                logger.warning(f"⚠️ Skipping wallet reset for '{service}': {e}")
                result.record(service, "discover-wallet", False, str(e))
                continue
            logger.info(f"  Wallet for '{service}': {name}")
            result.record(service, "discover-wallet", True, name)
            wallets.append((service, name))
        return wallets

    def delete_wallets(self, wallets: Sequence[Tuple[str, str]], result: BatchResult) -> None:
        """ Drop the wallet database of every (service, wallet name) pair. """
        if not wallets:
            return
        try:
            instance = self.platform.find_instance(self.wallet_db_service)
        except PlatformError as e:
            logger.warning(f"⚠️ Could not look up '{self.wallet_db_service}': {e}")
            instance = None
        if instance is None:
            logger.warning(f"⚠️ No running '{self.wallet_db_service}' instance; wallets were not deleted")
            for service, name in wallets:
                result.record(service, "delete-wallet", False,
                              f"'{self.wallet_db_service}' not found; wallet {name} not deleted")
            return

        for service, name in wallets:
            logger.info(f"  Deleting wallet {name} of '{service}'")
            try:
                self.platform.exec_in(instance, ["psql", "-U", self.database_user,
                                                 "-c", drop_database_statement(name)])
                result.record(service, "delete-wallet", True, name)
            except PlatformError as e:
                logger.error(f"  Failed to delete wallet {name} of '{service}': {e}")
                result.record(service, "delete-wallet", False, str(e))

    def reset(self, services: Sequence[str]) -> BatchResult:
        """
        Reset the wallets of a set of issuer services.

        Wallet names are read from the running services before anything is scaled
        down, since they are only available from a live instance.

        Returns:
            BatchResult: Outcomes of every lookup, scale request and wallet deletion.
        """
        services = require_targets(services, "reset")
        result = BatchResult("reset")
        wallets = self.discover_wallets(services, result)
        stopped = self._scale_down_and_wait(services, result)
        deletable = []
        for service, name in wallets:
            if service in stopped:
                deletable.append((service, name))
            else:
                logger.warning(f"⚠️ '{service}' may still be running; wallet {name} not deleted")
                result.record(service, "delete-wallet", False,
                              f"'{service}' still running; wallet {name} not deleted")
        self.delete_wallets(deletable, result)
        self.confirmation_barrier.wait(services, "Wallets reset")
        result.extend(self.scale_up(services))
        if result.ok:
            logger.info("✅ Reset complete.")
        return result

    def get_pods(self) -> List[str]:
        return self.platform.list_instances()
