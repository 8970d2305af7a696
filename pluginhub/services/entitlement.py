"""
License entitlement evaluation

Pure functions over ``PluginLicense`` rows. Absence of a license is a normal
state, so nothing here raises.
"""

from typing import Iterable, Optional, Set
import time

from pluginhub.models.plugin_license import LicenseStatus, PluginLicense


def now_epoch() -> int:
    return int(time.time())


def is_license_active(license: Optional[PluginLicense], now: Optional[int] = None) -> bool:
    """Active status and not past ``expires_at``"""
    if license is None or license.status != LicenseStatus.ACTIVE:
        return False
    if license.expires_at is None:
        return True
    return license.expires_at > (now if now is not None else now_epoch())


def license_has_feature(license: Optional[PluginLicense], feature: str, now: Optional[int] = None) -> bool:
    if not is_license_active(license, now):
        return False
    return feature in (license.features or [])


def licensed_plugin_ids(licenses: Iterable[PluginLicense], now: Optional[int] = None) -> Set[str]:
    return {lic.plugin_id for lic in licenses if is_license_active(lic, now)}
