from abc import ABC, abstractmethod
from threading import Lock

from beacon_sdk.utils import logger

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Dict
    from typing import Iterable
    from typing import Optional
    from typing import Set


_installer_lock = Lock()

# Set of all integration identifiers we have attempted to install
_processed_integrations: "Set[str]" = set()

# Set of all integration identifiers we have actually installed
_installed_integrations: "Set[str]" = set()


def setup_integrations(
    integrations: "Optional[Iterable[Integration]]",
) -> "Dict[str, Integration]":
    """
    Given a list of integration instances, this installs them all.

    `setup_once` runs at most once per integration type for the lifetime of
    the process, no matter how many clients are created.
    """
    by_identifier: "Dict[str, Integration]" = {}
    for integration in integrations or ():
        if not integration.identifier:
            raise ValueError(
                "Integration %r has no identifier" % (type(integration).__name__,)
            )
        by_identifier[integration.identifier] = integration

    logger.debug("Setting up integrations")

    for identifier, integration in by_identifier.items():
        with _installer_lock:
            if identifier not in _processed_integrations:
                logger.debug(
                    "Setting up previously not enabled integration %s", identifier
                )
                try:
                    type(integration).setup_once()
                except DidNotEnable as e:
                    logger.debug("Did not enable integration %s: %s", identifier, e)
                    raise
                else:
                    _installed_integrations.add(identifier)
                finally:
                    _processed_integrations.add(identifier)

    rv = {
        identifier: integration
        for identifier, integration in by_identifier.items()
        if identifier in _installed_integrations
    }

    for identifier in rv:
        logger.debug("Enabling integration %s", identifier)

    return rv


class DidNotEnable(Exception):  # noqa: N818
    """
    The integration could not be enabled due to a trivial user error like a
    missing optional package. It is raised from `setup_once` and reaches the
    caller that configured the integration.
    """


class Integration(ABC):
    """Baseclass for all integrations.

    To accept options for an integration, implement your own constructor that
    saves those options on `self`.
    """

    identifier: "str" = None  # type: ignore[assignment]
    """String unique ID of integration type"""

    @staticmethod
    @abstractmethod
    def setup_once() -> None:
        """
        Initialize the integration.

        This function is only called once, ever. Configuration is not available
        at this point, so the only thing to do here is to hook into the host
        runtime. Inside those hooks `Hub.current.get_integration` can be used
        to find out whether the integration is enabled on the current client.
        """
        pass
