"""Run report formatting functions.

Provides human-readable and machine-readable output for reconciler runs:

- ``format_install_report`` -- summary of an install run.
- ``format_update_report`` -- summary of an update run.
- ``format_scan_report`` -- files identified by a scan.
- ``format_list_report`` -- declared mods and their install state.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from .models import (
    InstallResult,
    ListedMod,
    ModChange,
    ModFailure,
    RunOutcome,
    ScanResult,
    UpdateResult,
)

_OUTCOME_LABELS = {
    RunOutcome.SUCCESS: "done",
    RunOutcome.NOTHING_TO_DO: "nothing to do",
    RunOutcome.PARTIAL_FAILURE: "finished with failures",
    RunOutcome.ABORTED: "aborted",
}


def _failure_lines(failures: list[ModFailure]) -> list[str]:
    lines = ["Failed:"]
    for f in failures:
        lines.append(f"  {f.name} ({f.platform.value}:{f.project_id}): {f.error}")
    lines.append("")
    return lines


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_install_report(result: InstallResult) -> str:
    """Format an install result as human-readable text.

    Sections are only included when they contain at least one entry.

    Args:
        result: The completed install result.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append(f"Install {_OUTCOME_LABELS[result.outcome]}")
    lines.append(
        f"{result.installed_count} mods declared: "
        f"{len(result.downloaded)} downloaded, "
        f"{result.failed_count} failed"
    )
    lines.append("")

    if result.downloaded:
        lines.append("Downloaded:")
        for change in result.downloaded:
            lines.append(f"  {change.name} -> {change.file_name} ({change.reason})")
        lines.append("")

    if result.unmanaged_files:
        lines.append("Unmanaged files (left untouched):")
        for finding in result.unmanaged_files:
            lines.append(f"  {finding.file_name} ({finding.name})")
        lines.append("")

    if result.failures:
        lines.extend(_failure_lines(result.failures))

    return "\n".join(lines).rstrip()


def format_update_report(result: UpdateResult) -> str:
    """Format an update result as human-readable text.

    Args:
        result: The completed update result.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append(f"Update {_OUTCOME_LABELS[result.outcome]}")
    lines.append(
        f"{result.updated_count} updated, {result.failed_count} failed"
    )
    lines.append("")

    if result.install is not None and result.install.downloaded:
        lines.append("Installed first:")
        for change in result.install.downloaded:
            lines.append(f"  {change.name} -> {change.file_name}")
        lines.append("")

    if result.updated:
        lines.append("Updated:")
        for change in result.updated:
            if change.previous_file_name:
                lines.append(
                    f"  {change.name}: {change.previous_file_name} -> "
                    f"{change.file_name}"
                )
            else:
                lines.append(f"  {change.name}: {change.file_name}")
        lines.append("")
    elif not result.failures:
        lines.append("No updates available.")
        lines.append("")

    if result.failures:
        lines.extend(_failure_lines(result.failures))

    return "\n".join(lines).rstrip()


def format_scan_report(result: ScanResult) -> str:
    """Format a scan result as human-readable text."""
    if result.outcome == RunOutcome.NOTHING_TO_DO:
        return "Scan nothing to do\nEvery mod file is managed."

    lines: list[str] = []
    lines.append(f"Scan {_OUTCOME_LABELS[result.outcome]}")
    lines.append(
        f"{len(result.matches)} recognised, "
        f"{len(result.unknown_files)} unknown, "
        f"{len(result.added)} added"
    )
    lines.append("")

    if result.matches:
        lines.append("Recognised:")
        for match in result.matches:
            lines.append(
                f"  {match.file_name}: {match.name} "
                f"({match.platform.value}:{match.project_id})"
            )
        lines.append("")

    if result.unknown_files:
        lines.append("Not recognised:")
        for file_name in result.unknown_files:
            lines.append(f"  {file_name}")
        lines.append("")

    if result.added:
        lines.append("Added:")
        for change in result.added:
            lines.append(f"  {change.name} -> {change.file_name}")
        lines.append("")

    if result.failures:
        lines.extend(_failure_lines(result.failures))

    return "\n".join(lines).rstrip()


def format_list_report(mods: list[ListedMod]) -> str:
    """Format declared mods, one per line, marked installed or missing."""
    if not mods:
        return "No mods declared."
    lines = ["Declared mods:"]
    for mod in mods:
        mark = "✓" if mod.installed else "✗"
        lines.append(f"  {mark} {mod.name} ({mod.project_id})")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def _change_to_json(change: ModChange) -> dict:
    entry: dict = {
        "platform": change.platform.value,
        "id": change.project_id,
        "name": change.name,
        "file_name": change.file_name,
        "reason": change.reason,
    }
    if change.previous_file_name:
        entry["previous_file_name"] = change.previous_file_name
    return entry


def _failure_to_json(failure: ModFailure) -> dict:
    return {
        "platform": failure.platform.value,
        "id": failure.project_id,
        "name": failure.name,
        "error": failure.error,
        "error_type": failure.error_type,
    }


def report_to_json(result: InstallResult | UpdateResult | ScanResult) -> dict:
    """Convert a run result to a structured dict for JSON serialisation.

    Args:
        result: An install, update or scan result.

    Returns:
        Dict with the command, outcome, counts and per-mod details.
    """
    if isinstance(result, ScanResult):
        return {
            "command": "scan",
            "outcome": result.outcome.value,
            "counts": {
                "recognised": len(result.matches),
                "unknown": len(result.unknown_files),
                "added": len(result.added),
                "failed": len(result.failures),
            },
            "matches": [
                {
                    "file_name": m.file_name,
                    "platform": m.platform.value,
                    "id": m.project_id,
                    "name": m.name,
                    "kind": m.kind.value,
                }
                for m in result.matches
            ],
            "unknown_files": list(result.unknown_files),
            "added": [_change_to_json(c) for c in result.added],
            "failures": [_failure_to_json(f) for f in result.failures],
        }

    if isinstance(result, UpdateResult):
        data: dict = {
            "command": "update",
            "outcome": result.outcome.value,
            "counts": {
                "updated": result.updated_count,
                "failed": result.failed_count,
            },
            "updated": [_change_to_json(c) for c in result.updated],
            "failures": [_failure_to_json(f) for f in result.failures],
        }
        if result.install is not None:
            data["install"] = report_to_json(result.install)
        return data

    return {
        "command": "install",
        "outcome": result.outcome.value,
        "counts": {
            "declared": result.installed_count,
            "downloaded": len(result.downloaded),
            "failed": result.failed_count,
            "unmanaged": len(result.unmanaged_files),
        },
        "downloaded": [_change_to_json(c) for c in result.downloaded],
        "unmanaged_files": [
            {"file_name": f.file_name, "name": f.name}
            for f in result.unmanaged_files
        ],
        "failures": [_failure_to_json(f) for f in result.failures],
    }


def list_to_json(mods: list[ListedMod]) -> dict:
    """Structured form of ``format_list_report``."""
    return {
        "command": "list",
        "mods": [
            {
                "name": mod.name,
                "platform": mod.platform.value,
                "id": mod.project_id,
                "installed": mod.installed,
                "file_name": mod.file_name,
                "version": mod.pinned_version,
            }
            for mod in mods
        ],
    }
