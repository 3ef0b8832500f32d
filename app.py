#!/usr/bin/env python3
"""
CDK Python application for a shared NFS filesystem

This application deploys:
- A VPC with public and private subnets
- A private Route 53 hosted zone
- An EBS-backed NFS server registered in the hosted zone
- A client instance that mounts the NFS share at boot
"""

import logging
import os

import aws_cdk as cdk
from aws_cdk import (
    App,
    CfnOutput,
    Environment,
    Stack,
    Tags,
    aws_ec2 as ec2,
    aws_route53 as route53,
)
from constructs import Construct

from shared_storage import AssetCache, LinuxMountPoint, MountableNfs, NfsInstance

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


class SharedNfsStack(Stack):
    """
    Stack with an NFS server and one client mounting it.
    """

    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Parameters for customization
        self.environment_name = self.node.try_get_context("environment") or "dev"
        hostname = self.node.try_get_context("hostname") or "nfs"
        zone_name = self.node.try_get_context("zone_name") or "storage.internal"
        mount_location = self.node.try_get_context("mount_location") or "/mnt/shared"
        client_cidr = self.node.try_get_context("client_cidr") or "10.0.0.0/16"

        self.vpc = ec2.Vpc(
            self,
            "Vpc",
            ip_addresses=ec2.IpAddresses.cidr(client_cidr),
            max_azs=2,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name="public",
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=24,
                ),
                ec2.SubnetConfiguration(
                    name="private",
                    subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
                    cidr_mask=24,
                ),
            ],
        )

        dns_zone = route53.PrivateHostedZone(
            self,
            "DnsZone",
            vpc=self.vpc,
            zone_name=zone_name,
        )

        # One cache for every mount in this stack
        asset_cache = AssetCache()

        self.nfs = NfsInstance(
            self,
            "NfsServer",
            vpc=self.vpc,
            dns_zone=dns_zone,
            hostname=hostname,
            mount=LinuxMountPoint(location=mount_location),
            asset_cache=asset_cache,
        )
        self.nfs.share(client_cidr)

        self.client = ec2.Instance(
            self,
            "Client",
            vpc=self.vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
            instance_type=ec2.InstanceType.of(ec2.InstanceClass.T3, ec2.InstanceSize.SMALL),
            machine_image=ec2.MachineImage.latest_amazon_linux2(),
        )
        MountableNfs(self, filesystem=self.nfs, asset_cache=asset_cache).mount_to_linux_instance(
            self.client,
            LinuxMountPoint(location=mount_location),
        )

        Tags.of(self).add("Environment", self.environment_name)
        Tags.of(self).add("ManagedBy", "CDK")

        CfnOutput(
            self,
            "NfsHostname",
            value=self.nfs.full_hostname,
            description="DNS name of the NFS server",
        )
        CfnOutput(
            self,
            "NfsLogGroupName",
            value=self.nfs.log_group.log_group_name,
            description="Log group with the NFS server launch logs",
        )


def main():
    """
    Main function to create and synthesize the CDK app.
    """
    app = App()

    env_name = app.node.try_get_context("environment") or "dev"
    env = Environment(
        account=os.getenv("CDK_DEFAULT_ACCOUNT"),
        region=os.getenv("CDK_DEFAULT_REGION"),
    )

    logger.info("Synthesizing SharedNfsStack-%s", env_name)
    SharedNfsStack(
        app,
        f"SharedNfsStack-{env_name}",
        env=env,
        description="EBS-backed NFS server with a mounting client",
    )

    app.synth()


if __name__ == "__main__":
    main()
