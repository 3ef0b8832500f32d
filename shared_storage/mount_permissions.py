"""
Mount permissions and mount point description for Linux hosts.
"""

import posixpath
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence, Tuple

from .errors import ConfigurationError


class MountPermissions(Enum):
    """Permission intent for a mounted filesystem."""

    READWRITE = "READWRITE"
    READONLY = "READONLY"


_LINUX_MOUNT_OPTIONS = {
    MountPermissions.READWRITE: "rw",
    MountPermissions.READONLY: "r",
}


def to_linux_mount_option(permissions: MountPermissions) -> str:
    """Return the Linux mount flag for the given permission."""
    return _LINUX_MOUNT_OPTIONS[permissions]


def join_mount_options(permissions: MountPermissions, *extras: Sequence[str]) -> str:
    """
    Build the single comma-joined options token passed to the mount scripts.

    The permission flag always comes first, followed by each group of extras
    in the order given. Options are never reordered or deduplicated.
    """
    options = [to_linux_mount_option(permissions)]
    for group in extras:
        if group:
            options.extend(group)
    return ",".join(options)


@dataclass(frozen=True)
class LinuxMountPoint:
    """
    Where and how a filesystem is mounted on a Linux host.

    Args:
        location: Absolute directory to mount the filesystem at.
        permissions: Read/write intent for the mount.
        extra_options: Additional mount options, appended after any options
            supplied by the filesystem being mounted.
    """

    location: str
    permissions: MountPermissions = MountPermissions.READWRITE
    extra_options: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not posixpath.isabs(self.location):
            raise ConfigurationError(f"Mount location must be an absolute path, got {self.location!r}")
        # Accept lists from callers but keep the stored value immutable.
        object.__setattr__(self, "extra_options", tuple(self.extra_options))

    @property
    def normalized_location(self) -> str:
        """The location with redundant and trailing separators removed."""
        return posixpath.normpath("/" + self.location.lstrip("/"))
