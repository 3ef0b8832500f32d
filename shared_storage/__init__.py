"""
CDK constructs for shared network filesystems.

This package provides an EBS-backed NFS server and helpers that mount NFS
and FSx for Lustre filesystems onto Linux EC2 instances through user data.
"""

from .asset_cache import AssetCache
from .block_volume import BlockVolumeFormat, MountableBlockVolume
from .cloudwatch import LogGroupProps, configure_log_shipping
from .errors import (
    ConfigurationError,
    SharedStorageError,
    UnsupportedDistributionError,
    UnsupportedPlatformError,
)
from .mount_permissions import LinuxMountPoint, MountPermissions, to_linux_mount_option
from .mountable_filesystem import IMountingInstance, MountableLinuxFilesystem
from .mountable_fsx_lustre import LinuxDistribution, MountableFsxLustre, lustre_client_installation_commands
from .mountable_nfs import MountableNfs
from .nfs_instance import NfsExport, NfsInstance, NfsInstanceNewVolumeProps, NfsInstanceVolumeProps

__all__ = [
    "AssetCache",
    "BlockVolumeFormat",
    "ConfigurationError",
    "IMountingInstance",
    "LinuxDistribution",
    "LinuxMountPoint",
    "LogGroupProps",
    "MountPermissions",
    "MountableBlockVolume",
    "MountableFsxLustre",
    "MountableLinuxFilesystem",
    "MountableNfs",
    "NfsExport",
    "NfsInstance",
    "NfsInstanceNewVolumeProps",
    "NfsInstanceVolumeProps",
    "SharedStorageError",
    "UnsupportedDistributionError",
    "UnsupportedPlatformError",
    "configure_log_shipping",
    "lustre_client_installation_commands",
    "to_linux_mount_option",
]
