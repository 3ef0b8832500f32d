"""
Mounting an :class:`~shared_storage.nfs_instance.NfsInstance` onto Linux hosts.
"""

from typing import TYPE_CHECKING, List, Optional, Sequence

from aws_cdk import aws_ec2 as ec2
from constructs import Construct

from .asset_cache import AssetCache
from .mountable_filesystem import MountableLinuxFilesystem, shell_command

if TYPE_CHECKING:
    from .nfs_instance import NfsInstance


class MountableNfs(MountableLinuxFilesystem):
    """
    Mounts the volume shared by an NfsInstance.

    The server must export its volume to the target first (see
    :meth:`NfsInstance.share`), otherwise the mount fails at boot. The
    current exports can be inspected through :attr:`NfsInstance.exports`.

    Args:
        scope: Construct used to locate the stack that owns the script bundle.
        filesystem: The NFS server to mount.
        extra_mount_options: NFSv4 mount options added to ``/etc/fstab``, for
            example ``["soft", "rsize=4096"]``.
        asset_cache: Cache used to share the script bundle within the stack.
    """

    BUNDLE_ID_PREFIX = "MountableNfsAsset"
    BUNDLE_UUID = "e76885c2-b1c3-4828-8aaa-eda91e2e60f0"
    BUNDLE_FILES = ("mountNfs.sh",)

    CLIENT_INSTALL_COMMAND = "if which yum; then sudo yum install -y nfs-utils; else sudo apt-get install -y nfs-common; fi"

    def __init__(
        self,
        scope: Construct,
        filesystem: "NfsInstance",
        extra_mount_options: Optional[Sequence[str]] = None,
        asset_cache: Optional[AssetCache] = None,
    ) -> None:
        super().__init__(scope, extra_mount_options, asset_cache)
        self.filesystem = filesystem

    @property
    def filesystem_connectable(self) -> ec2.IConnectable:
        return self.filesystem.connections

    @property
    def filesystem_port(self) -> ec2.Port:
        return ec2.Port.tcp(self.filesystem.port)

    def client_installation_commands(self) -> List[str]:
        return [self.CLIENT_INSTALL_COMMAND]

    def mount_script_invocation(self, mount_dir: str, mount_options: str) -> str:
        return shell_command(
            "bash",
            "./mountNfs.sh",
            self.filesystem.full_hostname,
            self.filesystem.mount.normalized_location,
            mount_dir,
            mount_options,
        )
