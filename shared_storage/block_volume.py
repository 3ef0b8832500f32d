"""
Attaching and mounting an EBS volume on the Linux instance that owns it.
"""

import logging
from enum import Enum
from typing import Optional, Sequence

from aws_cdk import aws_ec2 as ec2
from constructs import Construct

from .asset_cache import AssetCache, bundle_construct_id
from .mount_permissions import LinuxMountPoint, join_mount_options
from .mountable_filesystem import add_bundle_commands, require_linux, script_bundle_asset, shell_command

logger = logging.getLogger(__name__)


class BlockVolumeFormat(Enum):
    """Filesystems that can be created on a blank block volume."""

    EXT3 = "ext3"
    EXT4 = "ext4"
    XFS = "xfs"


class MountableBlockVolume:
    """
    Mounts an EBS volume onto a single instance.

    The volume is attached as ``/dev/xvdf``. At boot the mount script waits
    for the device, creates the filesystem only if the volume is blank, and
    mounts it through an ``/etc/fstab`` entry keyed by UUID. The volume must
    not be partitioned.
    """

    BUNDLE_ID_PREFIX = "MountableBlockVolumeAsset"
    BUNDLE_UUID = "01ca4aa6-d440-4f83-84d8-80a5a21fd0e3"
    BUNDLE_FILES = ("mountEbsBlockVolume.sh",)
    DEVICE_NAME = "/dev/xvdf"

    def __init__(
        self,
        scope: Construct,
        block_volume: ec2.IVolume,
        volume_format: BlockVolumeFormat = BlockVolumeFormat.XFS,
        extra_mount_options: Optional[Sequence[str]] = None,
        asset_cache: Optional[AssetCache] = None,
    ) -> None:
        self.scope = scope
        self.block_volume = block_volume
        self.volume_format = volume_format
        self.extra_mount_options = list(extra_mount_options or [])
        self.asset_cache = asset_cache if asset_cache is not None else AssetCache()

    def mount_to_linux_instance(self, target: ec2.Instance, mount: LinuxMountPoint) -> None:
        require_linux(target)

        ec2.CfnVolumeAttachment(
            self.scope,
            "VolumeAttachment",
            instance_id=target.instance_id,
            volume_id=self.block_volume.volume_id,
            device=self.DEVICE_NAME,
        )

        asset = self.asset_cache.get_or_create(
            self.scope,
            bundle_construct_id(self.BUNDLE_ID_PREFIX, self.BUNDLE_UUID),
            lambda stack, construct_id: script_bundle_asset(stack, construct_id, self.BUNDLE_FILES),
        )
        asset.grant_read(target.grant_principal)

        mount_dir = mount.normalized_location
        options = join_mount_options(mount.permissions, self.extra_mount_options, mount.extra_options)
        logger.info("Mounting block volume at %s as %s", mount_dir, self.volume_format.value)
        add_bundle_commands(
            target.user_data,
            asset,
            shell_command(
                "bash",
                "./mountEbsBlockVolume.sh",
                self.block_volume.volume_id,
                self.volume_format.value,
                mount_dir,
                options,
            ),
        )
