"""
Shipping instance boot logs to CloudWatch Logs.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

from aws_cdk import Duration, RemovalPolicy
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_logs as logs
from aws_cdk import aws_ssm as ssm
from constructs import Construct

logger = logging.getLogger(__name__)

DEFAULT_LOG_GROUP_PREFIX = "/shared-storage/"
CLOUDWATCH_LOG_FLUSH_INTERVAL = Duration.seconds(15)
CLOUD_INIT_LOG_PATH = "/var/log/cloud-init-output.log"
CLOUD_INIT_LOG_PREFIX = "cloud-init-output"


@dataclass(frozen=True)
class LogGroupProps:
    """
    Settings for the log group that receives an instance's boot logs.

    Args:
        log_group_prefix: Prepended to the construct id to form the group name.
        retention: How long log events are kept.
        removal_policy: What happens to the group when it leaves the stack.
    """

    log_group_prefix: str = DEFAULT_LOG_GROUP_PREFIX
    retention: logs.RetentionDays = logs.RetentionDays.THREE_DAYS
    removal_policy: RemovalPolicy = RemovalPolicy.RETAIN


def cloudwatch_agent_config(log_group_name: str) -> dict:
    """The CloudWatch agent configuration that streams the cloud-init output log."""
    return {
        "logs": {
            "logs_collected": {
                "files": {
                    "collect_list": [
                        {
                            "log_group_name": log_group_name,
                            "log_stream_name": CLOUD_INIT_LOG_PREFIX + "-{instance_id}",
                            "file_path": CLOUD_INIT_LOG_PATH,
                            "timezone": "Local",
                        }
                    ]
                }
            },
            "log_stream_name": "DefaultLogStream-{instance_id}",
            "force_flush_interval": int(CLOUDWATCH_LOG_FLUSH_INTERVAL.to_seconds()),
        }
    }


def configure_log_shipping(
    scope: Construct,
    host: ec2.Instance,
    group_name: str,
    log_group_props: Optional[LogGroupProps] = None,
) -> logs.ILogGroup:
    """
    Install and configure the CloudWatch agent on a host through its user data.

    The log group is created once per scope under the id ``LogGroup`` and
    reused on later calls. The agent configuration is kept in an SSM
    parameter that the host is granted read access to.

    Returns:
        The log group the host writes to.
    """
    props = log_group_props or LogGroupProps()
    log_group_name = props.log_group_prefix + group_name

    log_group = scope.node.try_find_child("LogGroup")
    if log_group is None:
        log_group = logs.LogGroup(
            scope,
            "LogGroup",
            log_group_name=log_group_name,
            retention=props.retention,
            removal_policy=props.removal_policy,
        )
    log_group.grant_write(host.grant_principal)

    config = ssm.StringParameter(
        scope,
        "CloudWatchAgentConfig",
        description=f"CloudWatch agent configuration for {group_name} logs",
        string_value=json.dumps(cloudwatch_agent_config(log_group.log_group_name)),
    )
    config.grant_read(host.grant_principal)

    logger.info("Shipping %s to log group %s", CLOUD_INIT_LOG_PATH, log_group.node.path)
    host.user_data.add_commands(
        "sudo yum install -y amazon-cloudwatch-agent",
        "sudo /opt/aws/amazon-cloudwatch-agent/bin/amazon-cloudwatch-agent-ctl "
        f"-a fetch-config -m ec2 -s -c ssm:{config.parameter_name}",
    )
    return log_group
