"""Mods folder reconciliation.

Public API for bringing a Minecraft mods folder in line with the mods
manifest (``modlist.json``) and its lock file (``modlist-lock.json``).

Architecture
------------
Each run is split into a **concurrent** network phase and a
**sequential** apply phase.  Catalog lookups fan out into per-mod tasks
that only fill their own result slot; downloads, file swaps and lock
updates then happen one mod at a time in manifest order, so the lock
file order and the log order are deterministic.

Modules:

- ``install``   -- ``InstallReconciler``: preflight scan, install missing
  or corrupt files, record new lock entries.
- ``update``    -- ``UpdateReconciler``: move non-pinned mods to their
  newest compatible release.
- ``scan``      -- ``ScanReconciler``: identify unmanaged files and
  optionally record them in the manifest and lock.
- ``listing``   -- ``list_mods``: declared mods and their install state.
- ``identity``  -- ``IdentityMatcher``: identify local files through
  CurseForge fingerprints and Modrinth SHA-1 lookups.
- ``installer`` -- ``ModInstaller``: download, verify and swap one file.
- ``models``    -- ``InstallResult``, ``UpdateResult``, ``ModChange``,
  ``ModFailure``, ``RunOutcome``: result contracts.
- ``reporter``  -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from pathlib import Path
    from minecraft_mod_manager.core.http import Downloader
    from minecraft_mod_manager.platforms import build_catalog, build_session
    from minecraft_mod_manager.sync import (
        InstallReconciler,
        format_install_report,
    )

    http = build_session()
    reconciler = InstallReconciler(
        Path("modlist.json"),
        catalog=build_catalog(http, curseforge_api_key="..."),
        downloader=Downloader(http),
    )
    print(format_install_report(reconciler.run()))
"""

from .identity import IdentityMatcher
from .install import InstallReconciler
from .installer import ModInstaller
from .listing import list_mods
from .models import (
    InstallResult,
    ListedMod,
    ModChange,
    ModFailure,
    RunOutcome,
    ScanFinding,
    ScanMatch,
    ScanResult,
    UpdateResult,
)
from .reporter import (
    format_install_report,
    format_list_report,
    format_scan_report,
    format_update_report,
    list_to_json,
    report_to_json,
)
from .scan import ScanReconciler
from .update import UpdateReconciler

__all__ = [
    "IdentityMatcher",
    "InstallReconciler",
    "InstallResult",
    "ListedMod",
    "ModChange",
    "ModFailure",
    "ModInstaller",
    "RunOutcome",
    "ScanFinding",
    "ScanMatch",
    "ScanReconciler",
    "ScanResult",
    "UpdateReconciler",
    "UpdateResult",
    "format_install_report",
    "format_list_report",
    "format_scan_report",
    "format_update_report",
    "list_mods",
    "list_to_json",
    "report_to_json",
]
