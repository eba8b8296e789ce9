"""Typed errors raised by the mod manager.

Errors carry structured context (paths, hashes, project ids) so callers
can render specific messages without parsing strings.  They fall into
a few families:

- *Precondition* errors abort a run before anything is mutated.
- *Expected remote* errors (``ExpectedRemoteError``) are per-mod and
  never abort a batch.
- *Integrity* errors (``IntegrityError``) are fatal for one mod only.
- ``AtomicWriteError`` surfaces a failed filesystem transaction together
  with any rollback failures.
"""

from __future__ import annotations


class ModManagerError(Exception):
    """Base class for all mod manager errors."""


# ---------------------------------------------------------------------------
# Precondition errors
# ---------------------------------------------------------------------------


class ConfigFileNotFoundError(ModManagerError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Configuration file not found: {path}")


class ConfigFileInvalidError(ModManagerError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(
            f"Configuration file is invalid: {path}: {reason}"
        )


class LockFileInvalidError(ModManagerError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Lock file is invalid: {path}: {reason}")


class UnresolvedFilesError(ModManagerError):
    """Raised when the mods folder holds files that cannot be reconciled."""

    def __init__(self, files: list[str]) -> None:
        self.files = list(files)
        super().__init__(
            "Unresolved files in mods folder: " + ", ".join(self.files)
        )


class UnmanagedFilesError(ModManagerError):
    """Raised by update when identified but unmanaged files exist."""

    def __init__(self, files: list[str]) -> None:
        self.files = list(files)
        super().__init__(
            "Unmanaged files in mods folder: " + ", ".join(self.files)
        )


class OperationCancelledError(ModManagerError):
    def __init__(self) -> None:
        super().__init__("Operation cancelled")


# ---------------------------------------------------------------------------
# Remote catalog errors
# ---------------------------------------------------------------------------


class UnknownPlatformError(ModManagerError):
    def __init__(self, platform: str) -> None:
        self.platform = platform
        super().__init__(f"unknown platform: {platform}")


class UnsupportedLoaderError(ModManagerError):
    def __init__(self, platform: str, loader: str) -> None:
        self.platform = platform
        self.loader = loader
        super().__init__(f"unsupported loader for {platform}: {loader}")


class ProjectNotFoundError(ModManagerError):
    def __init__(self, platform: str, project_id: str) -> None:
        self.platform = platform
        self.project_id = project_id
        super().__init__(
            f"Project not found on {platform}: {project_id}"
        )


class ProjectApiError(ModManagerError):
    def __init__(
        self, platform: str, project_id: str, reason: str
    ) -> None:
        self.platform = platform
        self.project_id = project_id
        self.reason = reason
        super().__init__(
            f"Project cannot be fetched due to an api error on "
            f"{platform}: {project_id} ({reason})"
        )


class VersionNotFoundError(ModManagerError):
    """No version matches a content hash.  Not an error for scanning."""

    def __init__(self, hash_value: str, algorithm: str = "sha1") -> None:
        self.hash = hash_value
        self.algorithm = algorithm
        super().__init__(
            f"No version found for {algorithm} hash {hash_value}"
        )


class VersionApiError(ModManagerError):
    def __init__(self, hash_value: str, reason: str) -> None:
        self.hash = hash_value
        self.reason = reason
        super().__init__(
            f"Version lookup failed for hash {hash_value}: {reason}"
        )


class FingerprintApiError(ModManagerError):
    def __init__(self, fingerprints: list[int], reason: str) -> None:
        self.fingerprints = list(fingerprints)
        self.reason = reason
        super().__init__(
            f"Fingerprint lookup failed for {len(self.fingerprints)} "
            f"fingerprints: {reason}"
        )


class DownloadError(ModManagerError):
    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Download of {url} failed: {reason}")


class ExpectedRemoteError(ModManagerError):
    """Per-mod remote failure that is logged and counted, never fatal."""


class ModNotFoundError(ExpectedRemoteError):
    def __init__(self, platform: str, project_id: str) -> None:
        self.platform = platform
        self.project_id = project_id
        super().__init__(f"mod not found on {platform}: {project_id}")


class NoCompatibleFileError(ExpectedRemoteError):
    def __init__(self, platform: str, project_id: str) -> None:
        self.platform = platform
        self.project_id = project_id
        super().__init__(
            f"no compatible file found on {platform} for {project_id}"
        )


# ---------------------------------------------------------------------------
# Integrity errors
# ---------------------------------------------------------------------------


class IntegrityError(ModManagerError):
    """Per-mod failure caused by untrustworthy file, hash or path data."""


class MissingHashError(IntegrityError):
    def __init__(self, file_name: str) -> None:
        self.file_name = file_name
        super().__init__(f"missing expected hash for {file_name}")


class HashMismatchError(IntegrityError):
    def __init__(self, file_name: str, expected: str, actual: str) -> None:
        self.file_name = file_name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"downloaded file hash mismatch for {file_name}: "
            f"expected {expected}, got {actual}"
        )


class InvalidFileNameError(IntegrityError):
    """A mod file name that could escape or misname the mods folder.

    ``reason`` is one of ``empty``, ``drive_letter``, ``unc_path``,
    ``path_separator`` or ``extension``.
    """

    def __init__(self, value: str, reason: str) -> None:
        self.value = value
        self.reason = reason
        if value:
            message = f"invalid mod filename {value}: {reason}"
        else:
            message = f"invalid mod filename: {reason}"
        super().__init__(message)


class OutsideRootError(IntegrityError):
    def __init__(self, path: str, resolved_path: str, root: str) -> None:
        self.path = path
        self.resolved_path = resolved_path
        self.root = root
        super().__init__(
            f"resolved path {resolved_path} for {path} is outside "
            f"root {root}"
        )


class InvalidTimestampError(IntegrityError):
    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(f"invalid release timestamp: {value!r}")


class MissingLockEntryError(IntegrityError):
    def __init__(self, name: str, project_id: str) -> None:
        self.name = name
        self.project_id = project_id
        super().__init__(
            f"{name} ({project_id}) has no lock entry; run install first"
        )


class LockedFileMissingError(IntegrityError):
    def __init__(self, name: str, path: str) -> None:
        self.name = name
        self.path = path
        super().__init__(
            f"locked file for {name} is missing: {path}; run install first"
        )


# ---------------------------------------------------------------------------
# Filesystem transaction errors
# ---------------------------------------------------------------------------


class SiblingPathExhaustedError(ModManagerError):
    def __init__(self, target: str, suffix: str) -> None:
        self.target = target
        self.suffix = suffix
        super().__init__(
            f"cannot allocate {suffix} sibling path for {target}"
        )


class AtomicWriteError(ModManagerError):
    """A failed write/swap together with every rollback failure."""

    def __init__(
        self, original: BaseException, rollback_errors: list[BaseException]
    ) -> None:
        self.original = original
        self.rollback_errors = list(rollback_errors)
        details = "; ".join(str(err) for err in self.rollback_errors)
        super().__init__(f"{original} (rollback failed: {details})")


class IntegrityAtomicWriteError(AtomicWriteError, IntegrityError):
    """Rollback failed after an integrity error; still a per-mod failure."""


class RemoteAtomicWriteError(AtomicWriteError, ExpectedRemoteError):
    """Rollback failed after an expected remote error."""


def raise_with_rollback(
    original: BaseException, rollback_errors: list[BaseException]
) -> None:
    """Re-raise *original*, wrapped with its rollback failures if any.

    The wrapper keeps the category of *original*, so a per-mod failure
    stays per-mod when cleanup also fails.
    """
    if not rollback_errors:
        raise original
    if isinstance(original, IntegrityError):
        wrapper = IntegrityAtomicWriteError
    elif isinstance(original, ExpectedRemoteError):
        wrapper = RemoteAtomicWriteError
    else:
        wrapper = AtomicWriteError
    raise wrapper(original, rollback_errors) from original
