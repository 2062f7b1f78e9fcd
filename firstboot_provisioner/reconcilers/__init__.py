from .flatpak_installer import build_flatpak_installer
from .gnome_config import build_gnome_config

BUILDERS = {
    "gnome-config": build_gnome_config,
    "flatpak-installer": build_flatpak_installer,
}

__all__ = [
    "BUILDERS",
    "build_flatpak_installer",
    "build_gnome_config",
]
