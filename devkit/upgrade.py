"""Finding and applying upgrades of global defaults."""

from collections.abc import Mapping

from pydantic import BaseModel

from devkit.catalog import CatalogStore
from devkit.errors import NotFoundError
from devkit.installation import InstallManager
from devkit.logging import get_logger
from devkit.models import EnvExport
from devkit.registry import InstallationRegistry
from devkit.switcher import Scope, VersionSwitcher

logger = get_logger(__name__)


class Upgrade(BaseModel):
    """A candidate whose global default is behind the catalog."""

    candidate: str
    current: str
    latest: str
    installed: bool


def find_upgrades(
    registry: InstallationRegistry,
    catalog: CatalogStore,
    candidate: str | None = None,
    platform: str | None = None,
) -> list[Upgrade]:
    """Compare global defaults with the catalog's latest stable versions.

    Candidates unknown to the catalog (for example local-only installs) are
    skipped. With a platform tag only versions installable there are offered.
    """
    defaults = registry.defaults()
    if candidate is not None:
        defaults = {candidate: defaults[candidate]} if candidate in defaults else {}

    upgrades = []
    for name, current in defaults.items():
        try:
            latest = catalog.latest_stable(name, platform)
        except NotFoundError as exc:
            logger.debug('upgrade_check_skipped', candidate=name, reason=str(exc))
            continue
        if latest == current.version:
            continue
        upgrades.append(
            Upgrade(
                candidate=name,
                current=current.version,
                latest=latest,
                installed=registry.is_installed(name, latest),
            ),
        )
    return upgrades


def apply_upgrade(
    upgrade: Upgrade,
    installer: InstallManager,
    switcher: VersionSwitcher,
    environ: Mapping[str, str] | None = None,
) -> EnvExport:
    """Install the latest version and make it the global default.

    Session overrides are left untouched. Returns the export that activates
    the new default.
    """
    installer.install(upgrade.candidate, upgrade.latest)
    export = switcher.switch(upgrade.candidate, upgrade.latest, Scope.GLOBAL, environ=environ)
    logger.info(
        'candidate_upgraded',
        candidate=upgrade.candidate,
        previous=upgrade.current,
        version=upgrade.latest,
    )
    return export


__all__ = ['Upgrade', 'apply_upgrade', 'find_upgrades']
