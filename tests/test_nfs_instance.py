"""
Unit tests for the NfsInstance construct.

These tests verify the resources the NFS server deploys and the order of
the commands in its user data.
"""

import re
import shlex

import aws_cdk as cdk
import pytest
from aws_cdk import assertions
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_route53 as route53

from shared_storage import (
    BlockVolumeFormat,
    ConfigurationError,
    LinuxMountPoint,
    LogGroupProps,
    MountPermissions,
    NfsExport,
    NfsInstance,
    NfsInstanceNewVolumeProps,
    NfsInstanceVolumeProps,
)

HOSTNAME = "hostname"
ZONE_NAME = "testZone"
MOUNT = LinuxMountPoint(location="/mnt/nfs", permissions=MountPermissions.READWRITE)
DEFAULT_EXPORT_ARGS = "/mnt/nfs {client} rw,sync,no_subtree_check,insecure"


class TestNfsInstance:
    """Test suite for the NfsInstance construct."""

    @pytest.fixture
    def stack(self) -> cdk.Stack:
        app = cdk.App()
        return cdk.Stack(app, "Stack")

    @pytest.fixture
    def vpc(self, stack: cdk.Stack) -> ec2.Vpc:
        return ec2.Vpc(stack, "Vpc")

    @pytest.fixture
    def dns_zone(self, stack: cdk.Stack, vpc: ec2.Vpc) -> route53.PrivateHostedZone:
        return route53.PrivateHostedZone(stack, "PrivateHostedZone", vpc=vpc, zone_name=ZONE_NAME)

    @pytest.fixture
    def make_instance(self, stack, vpc, dns_zone):
        def make(**kwargs) -> NfsInstance:
            kwargs.setdefault("mount", MOUNT)
            return NfsInstance(stack, "NfsInstance", vpc=vpc, dns_zone=dns_zone, hostname=HOSTNAME, **kwargs)

        return make

    @pytest.fixture
    def instance(self, make_instance) -> NfsInstance:
        return make_instance()

    def test_creates_encrypted_server(self, stack: cdk.Stack, instance: NfsInstance) -> None:
        """Test that the server uses the default size and an encrypted root volume."""
        template = assertions.Template.from_stack(stack)

        template.resource_count_is("AWS::EC2::Instance", 1)
        template.has_resource_properties("AWS::EC2::Instance", {
            "InstanceType": "m5.xlarge",
            "BlockDeviceMappings": [
                {
                    "DeviceName": "/dev/xvda",
                    "Ebs": {
                        "Encrypted": True,
                        "VolumeSize": 10,
                    },
                },
            ],
        })

    def test_waits_for_boot_signal(self, stack: cdk.Stack, instance: NfsInstance) -> None:
        template = assertions.Template.from_stack(stack)
        template.has_resource("AWS::EC2::Instance", {
            "CreationPolicy": {
                "ResourceSignal": {
                    "Timeout": "PT5M",
                },
            },
        })

    def test_creates_record_set(self, stack: cdk.Stack, instance: NfsInstance) -> None:
        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::Route53::RecordSet", {
            "Name": f"{HOSTNAME}.{ZONE_NAME}.",
            "Type": "A",
        })

    def test_creates_encrypted_volume(self, stack: cdk.Stack, instance: NfsInstance) -> None:
        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::EC2::Volume", {
            "Encrypted": True,
            "Size": 20,
        })
        template.has_resource_properties("AWS::EC2::VolumeAttachment", {
            "Device": "/dev/xvdf",
        })

    def test_creates_log_group(self, stack: cdk.Stack, instance: NfsInstance) -> None:
        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::Logs::LogGroup", {
            "LogGroupName": "/shared-storage/NfsInstance",
            "RetentionInDays": 3,
        })
        template.resource_count_is("AWS::SSM::Parameter", 1)

    def test_log_group_props(self, stack: cdk.Stack, make_instance) -> None:
        make_instance(log_group_props=LogGroupProps(log_group_prefix="/custom/"))
        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::Logs::LogGroup", {
            "LogGroupName": "/custom/NfsInstance",
        })

    def test_public_members(self, instance: NfsInstance) -> None:
        """Test that the instance exposes the server's identity."""
        assert instance.port == 2049
        assert instance.full_hostname == f"{HOSTNAME}.{ZONE_NAME}"
        assert instance.grant_principal is not None
        assert instance.role.role_arn == instance.server.role.role_arn
        assert instance.user_data.render() == instance.server.user_data.render()
        assert instance.mount == MOUNT
        assert instance.exports == ()
        assert len(instance.connections.security_groups) == 1

    def test_user_data_order(self, instance: NfsInstance) -> None:
        """Test that log shipping is configured before anything that can fail."""
        user_data = instance.user_data.render()

        steps = [
            "trap exitTrap EXIT",
            "set -xefuo pipefail",
            "amazon-cloudwatch-agent-ctl -a fetch-config",
            "bash ./mountEbsBlockVolume.sh",
            "sudo yum install -y nfs-utils",
            "sudo systemctl enable nfs-server",
            "sudo systemctl start nfs-server",
        ]
        positions = [user_data.index(step) for step in steps]
        assert positions == sorted(positions)

        # The export script is downloaded last but not run until share() is called.
        last_copy = user_data.rindex("aws s3 cp")
        assert last_copy > positions[-1]
        assert "chmod +x" not in user_data[last_copy:]

    def test_mounts_volume_as_xfs(self, instance: NfsInstance) -> None:
        user_data = instance.user_data.render()
        assert re.search(r"bash \./mountEbsBlockVolume\.sh \S+ xfs /mnt/nfs rw$", user_data, re.M)

    def test_share_appends_export(self, instance: NfsInstance) -> None:
        instance.share("client-a")

        assert instance.exports == (
            NfsExport(client="client-a", nfs_options=("rw", "sync", "no_subtree_check", "insecure")),
        )
        assert DEFAULT_EXPORT_ARGS.format(client="client-a") in instance.user_data.render()

    def test_share_is_not_deduplicated(self, instance: NfsInstance) -> None:
        instance.share("10.0.0.0/24")
        instance.share("10.0.0.0/24")

        assert len(instance.exports) == 2
        assert instance.user_data.render().count(DEFAULT_EXPORT_ARGS.format(client="10.0.0.0/24")) == 2

    def test_share_custom_options(self, instance: NfsInstance) -> None:
        instance.share("*.example.com", ["ro", "async"])

        assert instance.exports[0].nfs_options == ("ro", "async")
        assert "/mnt/nfs '*.example.com' ro,async" in instance.user_data.render()

    def test_share_quotes_client_pattern(self, instance: NfsInstance) -> None:
        client = 'host"; touch /tmp/x; "'
        instance.share(client)

        line = next(line for line in instance.user_data.render().splitlines() if line.endswith("insecure"))
        assert shlex.split(line)[1:] == ["/mnt/nfs", client, "rw,sync,no_subtree_check,insecure"]

    def test_exports_snapshot_is_read_only(self, instance: NfsInstance) -> None:
        snapshot = instance.exports
        instance.share("client-a")

        assert snapshot == ()
        assert not hasattr(instance.exports, "append")

    def test_no_available_subnets(self, stack: cdk.Stack, make_instance) -> None:
        """Test that an empty subnet selection fails before anything is created."""
        invalid_subnets = ec2.SubnetSelection(
            subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
            availability_zones=["dummy zone"],
        )

        with pytest.raises(ConfigurationError, match="Did not find any subnets matching") as error:
            make_instance(vpc_subnets=invalid_subnets)
        assert "dummy zone" in str(error.value)

        template = assertions.Template.from_stack(stack)
        template.resource_count_is("AWS::EC2::Instance", 0)
        template.resource_count_is("AWS::EC2::Volume", 0)
        template.resource_count_is("AWS::Route53::RecordSet", 0)

    def test_missing_subnet_type(self, stack: cdk.Stack, make_instance) -> None:
        """Test that selecting a subnet type the VPC lacks is a configuration error."""
        with pytest.raises(ConfigurationError, match="Did not find any subnets matching"):
            make_instance(vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_ISOLATED))

        assertions.Template.from_stack(stack).resource_count_is("AWS::EC2::Instance", 0)

    @pytest.mark.parametrize("hostname", ["", "Upper", "under_score", "a" * 64])
    def test_invalid_hostname(self, stack, vpc, dns_zone, hostname) -> None:
        with pytest.raises(ConfigurationError, match="Invalid hostname"):
            NfsInstance(stack, "NfsInstance", vpc=vpc, dns_zone=dns_zone, hostname=hostname, mount=MOUNT)

    def test_instance_type(self, stack: cdk.Stack, make_instance) -> None:
        make_instance(instance_type=ec2.InstanceType("m4.micro"))
        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::EC2::Instance", {
            "InstanceType": "m4.micro",
        })

    def test_key_name(self, stack: cdk.Stack, make_instance) -> None:
        make_instance(key_name="someKeyName")
        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::EC2::Instance", {
            "KeyName": "someKeyName",
        })

    def test_existing_volume(self, stack: cdk.Stack, vpc: ec2.Vpc, make_instance) -> None:
        volume = ec2.Volume(
            stack,
            "ExistingVolume",
            availability_zone=vpc.private_subnets[0].availability_zone,
            size=cdk.Size.gibibytes(50),
        )
        instance = make_instance(volume=NfsInstanceVolumeProps(volume=volume))

        assert instance.volume is volume
        template = assertions.Template.from_stack(stack)
        template.resource_count_is("AWS::EC2::Volume", 1)
        assert " xfs /mnt/nfs " in instance.user_data.render()

    def test_new_volume_props(self, stack: cdk.Stack, make_instance) -> None:
        instance = make_instance(volume=NfsInstanceVolumeProps(volume_props=NfsInstanceNewVolumeProps(
            size=cdk.Size.gibibytes(30),
            file_system_type=BlockVolumeFormat.EXT4,
        )))

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::EC2::Volume", {
            "Encrypted": True,
            "Size": 30,
        })
        assert " ext4 /mnt/nfs " in instance.user_data.render()

    def test_add_security_group(self, stack: cdk.Stack, vpc: ec2.Vpc, instance: NfsInstance) -> None:
        extra = ec2.SecurityGroup(stack, "ExtraSecurityGroup", vpc=vpc)
        instance.add_security_group(extra)

        assert len(instance.connections.security_groups) == 2
        template = assertions.Template.from_stack(stack)
        servers = template.find_resources("AWS::EC2::Instance")
        (server,) = servers.values()
        assert len(server["Properties"]["SecurityGroupIds"]) == 2
