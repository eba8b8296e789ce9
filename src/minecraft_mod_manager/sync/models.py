"""Pydantic models for the install and update reconcilers.

Defines the data contracts shared by the sync modules:

- ``RunOutcome``: How a run ended, mapped to CLI exit codes.
- ``IdentityHit`` / ``ScannedFile``: Content identity results.
- ``ScanFinding``: A local file the preflight scan reported.
- ``ModChange`` / ``ModFailure``: Per-mod results.
- ``ScanMatch`` / ``ScanResult``: Files identified by ``mmm scan``.
- ``ListedMod``: One row of ``mmm list``.
- ``InstallResult`` / ``UpdateResult``: Aggregate results for a run.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from minecraft_mod_manager.models import Platform


class RunOutcome(str, Enum):
    """How a reconciliation run ended."""

    SUCCESS = "success"
    NOTHING_TO_DO = "nothing_to_do"
    PARTIAL_FAILURE = "partial_failure"
    ABORTED = "aborted"


class EnsureReason(str, Enum):
    """Why a locked file was (or was not) downloaded."""

    ALREADY_PRESENT = "already_present"
    MISSING = "missing"
    HASH_MISMATCH = "hash_mismatch"


class FindingKind(str, Enum):
    UNMANAGED = "unmanaged"
    LOCK_MISSING = "lock_missing"
    HASH_MISMATCH = "hash_mismatch"


class IdentityHit(BaseModel):
    """A catalog project a local file was identified as.

    Attributes:
        platform: Catalog that recognised the file.
        project_id: Project id on that catalog.
        name: Human-readable project name.
    """

    platform: Platform
    project_id: str
    name: str

    model_config = {"frozen": True}


class ScannedFile(BaseModel):
    """Identity information for one local file.

    ``hits`` are ordered Modrinth first, then by project id.
    """

    path: str
    sha1: str
    fingerprint: int
    hits: list[IdentityHit] = []

    model_config = {"frozen": True}


class ScanFinding(BaseModel):
    """A non-managed local file reported by the install preflight.

    Attributes:
        file_name: Base name of the file in the mods folder.
        name: Name of the first identity hit.
        kind: Unmanaged (informational) or one of the hard-stop kinds.
    """

    file_name: str
    name: str
    kind: FindingKind

    model_config = {"frozen": True}

    @property
    def blocking(self) -> bool:
        return self.kind != FindingKind.UNMANAGED


class ModChange(BaseModel):
    """A mod file that was downloaded or replaced.

    Attributes:
        platform: Catalog of the mod.
        project_id: Project id of the mod.
        name: Display name of the mod.
        file_name: File now present in the mods folder.
        previous_file_name: File it replaced, if the name changed.
        reason: Why the file was written.
    """

    platform: Platform
    project_id: str
    name: str
    file_name: str
    previous_file_name: str | None = None
    reason: str

    model_config = {"frozen": True}


class ModFailure(BaseModel):
    """A mod that could not be installed or updated.

    Attributes:
        platform: Catalog of the mod.
        project_id: Project id of the mod.
        name: Display name of the mod.
        error: Error message.
        error_type: Exception class name, for structured reports.
    """

    platform: Platform
    project_id: str
    name: str
    error: str
    error_type: str

    model_config = {"frozen": True}


class InstallResult(BaseModel):
    """Aggregate result of an install run."""

    outcome: RunOutcome
    installed_count: int = 0
    downloaded: list[ModChange] = []
    failures: list[ModFailure] = []
    unmanaged_files: list[ScanFinding] = []

    model_config = {"frozen": True}

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def unmanaged_found(self) -> bool:
        return bool(self.unmanaged_files)


class UpdateResult(BaseModel):
    """Aggregate result of an update run."""

    outcome: RunOutcome
    updated_count: int = 0
    failed_count: int = 0
    updated: list[ModChange] = []
    failures: list[ModFailure] = []
    install: InstallResult | None = None

    model_config = {"frozen": True}


class ScanMatch(BaseModel):
    """A non-managed local file a catalog recognised.

    Attributes:
        file_name: Base name of the file in the mods folder.
        platform: Catalog the file was attributed to.
        project_id: Project id on that catalog.
        name: Project display name.
        kind: How the file relates to the manifest and lock.
    """

    file_name: str
    platform: Platform
    project_id: str
    name: str
    kind: FindingKind

    model_config = {"frozen": True}


class ScanResult(BaseModel):
    """Aggregate result of a scan run."""

    outcome: RunOutcome
    matches: list[ScanMatch] = []
    unknown_files: list[str] = []
    added: list[ModChange] = []
    failures: list[ModFailure] = []

    model_config = {"frozen": True}


class ListedMod(BaseModel):
    """One declared mod and whether its locked file is present."""

    name: str
    platform: Platform
    project_id: str
    installed: bool
    file_name: str | None = None
    pinned_version: str | None = None

    model_config = {"frozen": True}
