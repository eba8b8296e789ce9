"""Pydantic models for the mods manifest, lock file and remote catalogs.

JSON field names follow the on-disk format (``gameVersion``,
``fileName``...); Python attributes use snake_case.  Models are
serialised with ``dump_json_model`` so optional fields that are unset
are omitted instead of written as ``null``.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Platform(str, Enum):
    """Remote catalogs a mod can be installed from."""

    CURSEFORGE = "curseforge"
    MODRINTH = "modrinth"


class Loader(str, Enum):
    BUKKIT = "bukkit"
    BUNGEECORD = "bungeecord"
    CAULDRON = "cauldron"
    DATAPACK = "datapack"
    FABRIC = "fabric"
    FOLIA = "folia"
    FORGE = "forge"
    LITELOADER = "liteloader"
    MODLOADER = "modloader"
    NEOFORGE = "neoforge"
    PAPER = "paper"
    PURPUR = "purpur"
    QUILT = "quilt"
    RIFT = "rift"
    SPIGOT = "spigot"
    SPONGE = "sponge"
    VELOCITY = "velocity"
    WATERFALL = "waterfall"


class ReleaseType(str, Enum):
    ALPHA = "alpha"
    BETA = "beta"
    RELEASE = "release"


_CAMEL = ConfigDict(populate_by_name=True)


class ModEntry(BaseModel):
    """One declared mod in the manifest.

    Attributes:
        type: Catalog the mod comes from.
        id: Project id on that catalog.
        name: Display name, refreshed from the catalog after installs.
        allowed_release_types: Per-mod override of the manifest default.
        allow_version_fallback: Accept files built for older patch
            releases of the target game version.
        version: Pinned version; pinned mods are never updated.
    """

    model_config = _CAMEL

    type: Platform
    id: str
    name: str = ""
    allowed_release_types: list[ReleaseType] | None = Field(
        default=None, alias="allowedReleaseTypes"
    )
    allow_version_fallback: bool | None = Field(
        default=None, alias="allowVersionFallback"
    )
    version: str | None = None

    @property
    def pinned_version(self) -> str | None:
        """The pinned version, or ``None`` when blank or unset."""
        if self.version is None or not self.version.strip():
            return None
        return self.version.strip()

    @property
    def is_pinned(self) -> bool:
        return self.pinned_version is not None

    def key(self) -> tuple[Platform, str]:
        return (self.type, self.id)


class ModsConfig(BaseModel):
    """The mods manifest (``modlist.json``)."""

    model_config = _CAMEL

    loader: Loader
    game_version: str = Field(alias="gameVersion")
    default_allowed_release_types: list[ReleaseType] = Field(
        alias="defaultAllowedReleaseTypes"
    )
    mods_folder: str = Field(alias="modsFolder")
    mods: list[ModEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_mods(self) -> "ModsConfig":
        seen: set[tuple[Platform, str]] = set()
        for mod in self.mods:
            if mod.key() in seen:
                raise ValueError(
                    f"duplicate mod entry {mod.type.value}:{mod.id}"
                )
            seen.add(mod.key())
        return self

    def effective_release_types(self, mod: ModEntry) -> list[ReleaseType]:
        """Per-mod allowed release types, falling back to the default."""
        if mod.allowed_release_types:
            return list(mod.allowed_release_types)
        return list(self.default_allowed_release_types)


class LockEntry(BaseModel):
    """Observed installed state for one mod."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: Platform
    id: str
    name: str
    file_name: str = Field(alias="fileName")
    released_on: str = Field(alias="releasedOn")
    hash: str
    download_url: str = Field(alias="downloadUrl")

    def key(self) -> tuple[Platform, str]:
        return (self.type, self.id)


class RemoteMod(BaseModel):
    """What a catalog reports as the file to install for a project."""

    model_config = ConfigDict(frozen=True)

    name: str
    file_name: str
    hash: str
    download_url: str
    release_date: str


class FetchOptions(BaseModel):
    """Selection criteria passed to ``fetch_mod``."""

    model_config = ConfigDict(frozen=True)

    allowed_release_types: list[ReleaseType]
    game_version: str
    loader: Loader
    allow_fallback: bool = False
    fixed_version: str | None = None


def dump_json_model(model: BaseModel) -> dict:
    """Serialise *model* using JSON aliases, omitting unset optionals."""
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def find_lock_index(
    lock: list[LockEntry], platform: Platform, project_id: str
) -> int:
    """Return the index of the lock entry for a project, or ``-1``."""
    for index, entry in enumerate(lock):
        if entry.key() == (platform, project_id):
            return index
    return -1
