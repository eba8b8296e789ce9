"""Minecraft Mod Manager: keep a mods folder in sync with a manifest."""

__version__ = "0.4.0"
