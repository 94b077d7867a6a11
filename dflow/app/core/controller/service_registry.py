"""
Service registry for the dflow demo.

This module defines the `Service` record and the `ServiceRegistry`, the canonical
list of deployable units managed by the dflow tooling. Services fall in two
categories:

    - Issuer services: agent containers issuing credentials, each owning a wallet.
    - Infrastructure services: the wallet database, the API gateway and the static
      web app, which are shared by all issuers.

The registry is read-only once built. Entry points use `resolve_targets()` to turn
positional command-line arguments into the ordered set of service names an
operation acts on.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence
from dflow.app.core.shell import PreconditionError


class ServiceCategory(str, Enum):
    ISSUER = "issuer"
    INFRASTRUCTURE = "infrastructure"


class TargetContext(str, Enum):
    """ Which default set applies when no service is named on the command line. """
    ISSUER = "issuer"
    ALL = "all"


@dataclass(frozen=True)
class Service:
    """
    A deployable unit of the dflow demo.

    Attributes:
        name (str): Unique service name (compose service / deployment config name).
        category (ServiceCategory): Issuer or infrastructure.
        host_env_var (Optional[str]): Configuration key holding the service host.
        port_env_var (Optional[str]): Configuration key holding the service port.
        default_host (Optional[str]): Host used when the binding is not configured.
        default_port (Optional[int]): Port used when the binding is not configured.
    """
    name: str
    category: ServiceCategory
    host_env_var: Optional[str] = None
    port_env_var: Optional[str] = None
    default_host: Optional[str] = None
    default_port: Optional[int] = None

    @property
    def is_issuer(self) -> bool:
        return self.category == ServiceCategory.ISSUER


def _agent(name: str, prefix: str, port: int) -> Service:
    return Service(
        name=name,
        category=ServiceCategory.ISSUER,
        host_env_var=f"{prefix}_AGENT_HOST",
        port_env_var=f"{prefix}_AGENT_PORT",
        default_host=name,
        default_port=port,
    )


# Names excluded from the issuer set
INFRASTRUCTURE_NAMES = ("wallet-db", "gateway", "dflow")

DEFAULT_SERVICES = (
    Service("wallet-db", ServiceCategory.INFRASTRUCTURE,
            host_env_var="POSTGRESQL_HOST", port_env_var="POSTGRESQL_PORT",
            default_host="wallet-db", default_port=5432),
    Service("gateway", ServiceCategory.INFRASTRUCTURE,
            host_env_var="GATEWAY_HOST", port_env_var="GATEWAY_PORT",
            default_host="gateway", default_port=8080),
    Service("dflow", ServiceCategory.INFRASTRUCTURE,
            port_env_var="WEB_HTTP_PORT", default_host="localhost", default_port=5000),
    _agent("bcreg-agent", "BCREG", 5001),
    _agent("worksafe-agent", "WORKSAFE", 5002),
    _agent("finance-agent", "FINANCE", 5003),
    _agent("fraser-valley-agent", "FRASER_VALLEY", 5004),
    _agent("surrey-agent", "SURREY", 5005),
    _agent("liquor-agent", "LIQUOR", 5006),
)


def unique(names: Iterable[str]) -> List[str]:
    """ Drop duplicate names, keeping the first occurrence. """
    seen = set()
    ordered = []
    for name in names:
        if name not in seen:
            seen.add(name)
            ordered.append(name)
    return ordered


def require_targets(targets: Sequence[str], operation: str) -> List[str]:
    """
    Ensure an operation has at least one target.

    Raises:
        PreconditionError: If `targets` is empty.
    """
    if not targets:
        raise PreconditionError(f"No services selected for '{operation}'")
    return list(targets)


class ServiceRegistry:
    """
    Read-only collection of the services managed by dflow.

    Args:
        services (Sequence[Service]): Services in enumeration order.
        infrastructure (Iterable[str]): Names excluded from the issuer set.
    """

    def __init__(self, services: Sequence[Service] = DEFAULT_SERVICES,
                 infrastructure: Iterable[str] = INFRASTRUCTURE_NAMES) -> None:
        self._services = tuple(services)
        self._infrastructure = frozenset(infrastructure)

    def all_services(self) -> List[Service]:
        return list(self._services)

    def issuer_services(self) -> List[Service]:
        """ All services minus the infrastructure exclusion set, in registry order. """
        return [s for s in self._services if s.name not in self._infrastructure]

    def infrastructure_services(self) -> List[Service]:
        return [s for s in self._services if s.name in self._infrastructure]

    def names(self, context: TargetContext = TargetContext.ALL) -> List[str]:
        services = self.issuer_services() if context == TargetContext.ISSUER else self.all_services()
        return [s.name for s in services]

    def get(self, name: str) -> Optional[Service]:
        for service in self._services:
            if service.name == name:
                return service
        return None

    def resolve_targets(self, args: Sequence[str],
                        context: TargetContext = TargetContext.ISSUER) -> List[str]:
        """
        Resolve the service names an operation acts on.

        Explicit names are returned as given, without checking them against the
        registry; the platform rejects unknown names itself.

        Args:
            args (Sequence[str]): Positional service names from the command line.
            context (TargetContext): Default set used when `args` is empty.

        Returns:
            List[str]: Ordered, duplicate-free service names.
        """
        if args:
            return unique(args)
        return self.names(context)
