"""
The shared contract for filesystems that can be mounted onto Linux hosts.

A mountable filesystem adds user data to a target instance that downloads a
bundle of bash scripts from the CDK asset bucket and runs the mount script
with positional arguments. The bundle is uploaded once per stack through an
:class:`~shared_storage.asset_cache.AssetCache`.
"""

import abc
import logging
import os
import shlex
from typing import List, Optional, Protocol, Sequence

from aws_cdk import Stack, Token
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_iam as iam
from aws_cdk import aws_s3_assets as s3_assets
from constructs import Construct

from .asset_cache import AssetCache, bundle_construct_id
from .errors import UnsupportedPlatformError
from .mount_permissions import LinuxMountPoint, join_mount_options

logger = logging.getLogger(__name__)

SCRIPTS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "scripts", "bash")


class IMountingInstance(Protocol):
    """What a mount needs from the host it is mounted on."""

    @property
    def connections(self) -> ec2.Connections: ...

    @property
    def grant_principal(self) -> iam.IPrincipal: ...

    @property
    def os_type(self) -> ec2.OperatingSystemType: ...

    @property
    def user_data(self) -> ec2.UserData: ...


def shell_command(*args: str) -> str:
    """
    Join a command line, quoting each argument for the shell.

    Unresolved CDK tokens, which stand for AWS generated identifiers, are
    left as they are.
    """
    return " ".join(arg if Token.is_unresolved(arg) else shlex.quote(arg) for arg in args)


def require_linux(target: IMountingInstance) -> None:
    """Raise unless the target runs Linux."""
    if target.os_type != ec2.OperatingSystemType.LINUX:
        raise UnsupportedPlatformError("Target instance must be Linux.")


def script_bundle_asset(stack: Stack, construct_id: str, files: Sequence[str]) -> s3_assets.Asset:
    """Stage a zip of the named files from the bundled bash scripts directory."""
    return s3_assets.Asset(
        stack,
        construct_id,
        path=SCRIPTS_DIR,
        exclude=["**/*"] + [f"!{name}" for name in files],
    )


def add_bundle_commands(
    user_data: ec2.UserData,
    asset: s3_assets.Asset,
    invocation: str,
    install_commands: Sequence[str] = (),
) -> None:
    """
    Append the commands that fetch a script bundle and run one script from it.

    Order: client installation, temporary directory, download, extraction,
    invocation, return to the previous directory, removal of the archive.
    """
    if install_commands:
        user_data.add_commands(*install_commands)
    user_data.add_commands(
        "TMPDIR=$(mktemp -d)",
        'pushd "$TMPDIR"',
    )
    bundle = user_data.add_s3_download_command(
        bucket=asset.bucket,
        bucket_key=asset.s3_object_key,
    )
    user_data.add_commands(
        f"unzip {bundle}",
        invocation,
        "popd",
        f"rm -f {bundle}",
    )


class MountableLinuxFilesystem(abc.ABC):
    """
    A network filesystem that can be mounted onto Linux instances.

    Subclasses name their script bundle and describe how the client is
    installed and how the mount script is called; the ordering of side
    effects lives here.

    Security Considerations
    -----------------------
    Instances that mount a filesystem download and run scripts from the CDK
    bootstrap bucket when they launch. Write access to that bucket must be
    restricted, and S3 server access logging or CloudTrail should be enabled
    on it.
    """

    #: Prefix of the stack-level construct id for the script bundle.
    BUNDLE_ID_PREFIX: str = ""
    #: Stable UUID that identifies the script bundle.
    BUNDLE_UUID: str = ""
    #: Files from the scripts directory that go into the bundle.
    BUNDLE_FILES: Sequence[str] = ()

    def __init__(
        self,
        scope: Construct,
        extra_mount_options: Optional[Sequence[str]] = None,
        asset_cache: Optional[AssetCache] = None,
    ) -> None:
        self.scope = scope
        self.extra_mount_options: List[str] = list(extra_mount_options or [])
        self.asset_cache = asset_cache if asset_cache is not None else AssetCache()

    @property
    @abc.abstractmethod
    def filesystem_connectable(self) -> ec2.IConnectable:
        """The endpoint clients must be allowed to reach."""

    @property
    @abc.abstractmethod
    def filesystem_port(self) -> ec2.Port:
        """The port the filesystem listens on."""

    @abc.abstractmethod
    def client_installation_commands(self) -> List[str]:
        """Commands that install the filesystem client on the target."""

    @abc.abstractmethod
    def mount_script_invocation(self, mount_dir: str, mount_options: str) -> str:
        """The command line that runs the mount script from the extracted bundle."""

    def mount_asset(self) -> s3_assets.Asset:
        """Fetch the script bundle for this filesystem type, creating it once per stack."""
        return self.asset_cache.get_or_create(
            self.scope,
            bundle_construct_id(self.BUNDLE_ID_PREFIX, self.BUNDLE_UUID),
            lambda stack, construct_id: script_bundle_asset(stack, construct_id, self.BUNDLE_FILES),
        )

    def mount_options(self, mount: LinuxMountPoint) -> str:
        """The comma-joined options token for a mount of this filesystem."""
        return join_mount_options(mount.permissions, self.extra_mount_options, mount.extra_options)

    def mount_to_linux_instance(self, target: IMountingInstance, mount: LinuxMountPoint) -> None:
        """
        Mount this filesystem onto the target when it boots.

        Args:
            target: The Linux instance that will mount the filesystem.
            mount: Where and how to mount it.

        Raises:
            UnsupportedPlatformError: The target is not a Linux instance. No
                rules, grants or commands are added in that case.
        """
        require_linux(target)
        install_commands = self.client_installation_commands()

        target.connections.allow_to(self.filesystem_connectable, self.filesystem_port)

        asset = self.mount_asset()
        asset.grant_read(target.grant_principal)

        mount_dir = mount.normalized_location
        invocation = self.mount_script_invocation(mount_dir, self.mount_options(mount))
        logger.info("Mounting %s at %s", type(self).__name__, mount_dir)
        add_bundle_commands(target.user_data, asset, invocation, install_commands)
