"""
A single EC2 instance serving an EBS volume over NFSv4.

When the instance is first launched, or relaunched after replacement, it:

1. ships its cloud-init output to CloudWatch Logs;
2. attaches the EBS volume and creates a filesystem on it if it is blank;
3. installs and starts the NFS server;
4. exports the volume to every client registered through ``share``.

Resources deployed: the EC2 instance, an A record for the instance's private
IP in the given private hosted zone, an encrypted EBS volume (unless one is
supplied), and a CloudWatch log group for the launch logs.

Security considerations: the instance downloads and runs scripts from the
CDK bootstrap bucket at launch, so write access to that bucket must be
limited. The EBS volume holds the shared data and should not be granted to
any other principal.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from aws_cdk import Duration, Size
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_iam as iam
from aws_cdk import aws_kms as kms
from aws_cdk import aws_route53 as route53
from aws_cdk import aws_s3_assets as s3_assets
from constructs import Construct

from .asset_cache import AssetCache
from .block_volume import BlockVolumeFormat, MountableBlockVolume
from .cloudwatch import LogGroupProps, configure_log_shipping
from .errors import ConfigurationError
from .mount_permissions import LinuxMountPoint
from .mountable_filesystem import SCRIPTS_DIR, shell_command

logger = logging.getLogger(__name__)

HOSTNAME_PATTERN = re.compile(r"^[a-z0-9-]{1,63}$")
DEFAULT_EXPORT_OPTIONS = ("rw", "sync", "no_subtree_check", "insecure")


@dataclass(frozen=True)
class NfsExport:
    """
    A client the volume is exported to.

    Args:
        client: Machine name pattern, see "Machine Name Formats" in exports(5).
        nfs_options: Export options, see "General Options" in exports(5).
    """

    client: str
    nfs_options: Tuple[str, ...]


@dataclass(frozen=True)
class NfsInstanceNewVolumeProps:
    """
    Settings for the EBS volume created when none is supplied.

    Args:
        size: Size of the volume.
        encryption_key: KMS key for the volume; the account's default EBS key
            is used when omitted.
        file_system_type: Filesystem created on the blank volume.
    """

    size: Size = field(default_factory=lambda: Size.gibibytes(20))
    encryption_key: Optional[kms.IKey] = None
    file_system_type: BlockVolumeFormat = BlockVolumeFormat.XFS


@dataclass(frozen=True)
class NfsInstanceVolumeProps:
    """
    The EBS volume that holds the shared filesystem.

    Supply either an existing, unpartitioned ``volume`` or settings for a new
    encrypted one. When ``volume`` is given ``volume_props`` is ignored and
    the volume is expected to carry (or be formatted as) XFS.
    """

    volume: Optional[ec2.IVolume] = None
    volume_props: Optional[NfsInstanceNewVolumeProps] = None


class NfsInstance(Construct):
    """
    An NFS server backed by an EBS volume and reachable by a fixed DNS name.

    Args:
        scope: Parent construct.
        construct_id: Id of this construct.
        vpc: VPC to launch the instance in.
        dns_zone: Private hosted zone the hostname is registered in.
        hostname: 1 to 63 characters of a-z, 0-9 and hyphen.
        mount: Where the volume is mounted on the server; this directory is
            what gets exported.
        vpc_subnets: Subnets to choose from; the first match is used.
        volume: The volume to serve; a new 20 GiB encrypted volume by default.
        instance_type: Must be an x86-64 type; m5.xlarge by default.
        key_name: EC2 key pair granting SSH access; none by default.
        log_group_props: Settings for the launch log group.
        role: Role for the instance profile, assumable by ec2.amazonaws.com.
        security_group: Security group for the instance; one is created by default.
        asset_cache: Cache used to share script bundles within the stack.

    Raises:
        ConfigurationError: The hostname is invalid or the subnet selection
            matches no subnets.
    """

    NFS_PORT = 2049
    ROOT_DEVICE_SIZE = Size.gibibytes(10)
    RESOURCE_SIGNAL_TIMEOUT = Duration.minutes(5)

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        vpc: ec2.IVpc,
        dns_zone: route53.IPrivateHostedZone,
        hostname: str,
        mount: LinuxMountPoint,
        vpc_subnets: Optional[ec2.SubnetSelection] = None,
        volume: Optional[NfsInstanceVolumeProps] = None,
        instance_type: Optional[ec2.InstanceType] = None,
        key_name: Optional[str] = None,
        log_group_props: Optional[LogGroupProps] = None,
        role: Optional[iam.IRole] = None,
        security_group: Optional[ec2.ISecurityGroup] = None,
        asset_cache: Optional[AssetCache] = None,
    ) -> None:
        super().__init__(scope, construct_id)

        if not HOSTNAME_PATTERN.match(hostname):
            raise ConfigurationError(
                f"Invalid hostname {hostname!r}: use 1 to 63 characters of a-z, 0-9 and hyphen"
            )

        selection = vpc_subnets or ec2.SubnetSelection()
        try:
            subnets = vpc.select_subnets(
                availability_zones=selection.availability_zones,
                one_per_az=selection.one_per_az,
                subnet_filters=selection.subnet_filters,
                subnet_group_name=selection.subnet_group_name,
                subnets=selection.subnets,
                subnet_type=selection.subnet_type,
            ).subnets
        except RuntimeError as err:
            raise ConfigurationError(
                f"Did not find any subnets matching {vpc_subnets!r}. Please use a different selection."
            ) from err
        if not subnets:
            raise ConfigurationError(
                f"Did not find any subnets matching {vpc_subnets!r}. Please use a different selection."
            )
        subnet = subnets[0]

        self.mount = mount
        self._exports: List[NfsExport] = []

        self.server = ec2.Instance(
            self,
            "Server",
            vpc=vpc,
            vpc_subnets=ec2.SubnetSelection(subnets=[subnet]),
            instance_type=instance_type or ec2.InstanceType.of(ec2.InstanceClass.M5, ec2.InstanceSize.XLARGE),
            machine_image=ec2.MachineImage.latest_amazon_linux2(),
            block_devices=[
                ec2.BlockDevice(
                    device_name="/dev/xvda",  # Root volume
                    volume=ec2.BlockDeviceVolume.ebs(
                        int(self.ROOT_DEVICE_SIZE.to_gibibytes()),
                        encrypted=True,
                    ),
                ),
            ],
            key_pair=ec2.KeyPair.from_key_pair_name(self, "KeyPair", key_name) if key_name else None,
            resource_signal_timeout=self.RESOURCE_SIGNAL_TIMEOUT,
            role=role,
            security_group=security_group,
        )

        route53.ARecord(
            self,
            "ARecord",
            target=route53.RecordTarget.from_ip_addresses(self.server.instance_private_ip),
            zone=dns_zone,
            record_name=hostname,
        )

        volume = volume or NfsInstanceVolumeProps()
        if volume.volume is not None:
            self.volume = volume.volume
            volume_format = BlockVolumeFormat.XFS
        else:
            new_volume = volume.volume_props or NfsInstanceNewVolumeProps()
            self.volume = ec2.Volume(
                self,
                "Volume",
                availability_zone=subnet.availability_zone,
                size=new_volume.size,
                encryption_key=new_volume.encryption_key,
                encrypted=True,
            )
            volume_format = new_volume.file_system_type

        volume_mount = MountableBlockVolume(
            self,
            block_volume=self.volume,
            volume_format=volume_format,
            asset_cache=asset_cache,
        )

        # Set up the server's user data.
        self.server.user_data.add_commands("set -xefuo pipefail")
        self.server.user_data.add_signal_on_exit_command(self.server)
        # Must come before anything that can fail so the failure is in the shipped logs.
        self.log_group = configure_log_shipping(self, self.server, construct_id, log_group_props)
        volume_mount.mount_to_linux_instance(self.server, mount)
        self._configure_nfs_server()
        export_asset = s3_assets.Asset(
            self,
            "ExportNfsDirectoryAsset",
            path=os.path.join(SCRIPTS_DIR, "exportNfsDirectory.sh"),
        )
        export_asset.grant_read(self.server.grant_principal)
        self._export_script_path = self.server.user_data.add_s3_download_command(
            bucket=export_asset.bucket,
            bucket_key=export_asset.s3_object_key,
        )

        self.port = self.NFS_PORT
        self.connections = ec2.Connections(
            default_port=ec2.Port.tcp(self.port),
            security_groups=self.server.connections.security_groups,
        )
        self.grant_principal: iam.IPrincipal = self.server.grant_principal
        self.role: iam.IRole = self.server.role
        self.user_data: ec2.UserData = self.server.user_data
        self.full_hostname = f"{hostname}.{dns_zone.zone_name}"

        self.node.default_child = self.server

    @property
    def exports(self) -> Tuple[NfsExport, ...]:
        """Every export registered with :meth:`share`, in order."""
        return tuple(self._exports)

    def share(self, client: str, nfs_options: Optional[Sequence[str]] = None) -> None:
        """
        Export the mounted volume to a client.

        Repeated calls are not merged: each adds another export line on the
        server. Only instances launched after the call pick it up.

        Args:
            client: Machine name pattern, see "Machine Name Formats" in exports(5).
            nfs_options: Export options; ``rw,sync,no_subtree_check,insecure``
                by default. Clients are always squashed to a dedicated user.
        """
        options = tuple(nfs_options) if nfs_options is not None else DEFAULT_EXPORT_OPTIONS
        self._exports.append(NfsExport(client=client, nfs_options=options))
        logger.info("Exporting %s to %s with %s", self.mount.normalized_location, client, ",".join(options))

        self.server.user_data.add_execute_file_command(
            file_path=self._export_script_path,
            arguments=shell_command(self.mount.normalized_location, client, ",".join(options)),
        )

    def add_security_group(self, *security_groups: ec2.ISecurityGroup) -> None:
        """Add security groups to the server."""
        for security_group in security_groups:
            self.server.add_security_group(security_group)
            self.connections.add_security_group(security_group)

    def _configure_nfs_server(self) -> None:
        self.server.user_data.add_commands(
            "sudo yum install -y nfs-utils",
            "sudo systemctl enable nfs-server",
            "sudo systemctl start nfs-server",
        )
