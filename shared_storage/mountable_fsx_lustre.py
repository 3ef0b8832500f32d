"""
Mounting an Amazon FSx for Lustre filesystem onto Linux hosts.

See https://docs.aws.amazon.com/fsx/latest/LustreGuide/install-lustre-client.html
for the per-distribution client installation steps.
"""

from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_fsx as fsx
from constructs import Construct

from .asset_cache import AssetCache
from .errors import UnsupportedDistributionError
from .mountable_filesystem import MountableLinuxFilesystem, shell_command


class LinuxDistribution(Enum):
    """Linux distributions with an FSx for Lustre client."""

    AMAZON_LINUX = "AMAZON_LINUX"
    AMAZON_LINUX_2 = "AMAZON_LINUX_2"
    CENTOS_AND_REDHAT_7_5 = "CENTOS_AND_REDHAT_7_5"
    CENTOS_AND_REDHAT_7_6 = "CENTOS_AND_REDHAT_7_6"
    CENTOS_AND_REDHAT_7_7 = "CENTOS_AND_REDHAT_7_7"
    CENTOS_AND_REDHAT_7_8_X86 = "CENTOS_AND_REDHAT_7_8_X86"
    CENTOS_AND_REDHAT_7_9_X86 = "CENTOS_AND_REDHAT_7_9_X86"
    CENTOS_AND_REDHAT_7_8_GRAVITON = "CENTOS_AND_REDHAT_7_8_GRAVITON"
    CENTOS_AND_REDHAT_7_9_GRAVITON = "CENTOS_AND_REDHAT_7_9_GRAVITON"
    CENTOS_AND_REDHAT_8_2 = "CENTOS_AND_REDHAT_8_2"
    UBUNTU_16_04 = "UBUNTU_16_04"
    UBUNTU_18_04 = "UBUNTU_18_04"
    UBUNTU_20_04 = "UBUNTU_20_04"
    SUSE_LINUX_12_SP3 = "SUSE_LINUX_12_SP3"
    SUSE_LINUX_12_SP4 = "SUSE_LINUX_12_SP4"
    SUSE_LINUX_12_SP5 = "SUSE_LINUX_12_SP5"


# Compares two kernel versions component by component. Returns 0 when $1 is
# older than $2 and 1 otherwise; exits the script when the versions do not
# have the same number of components.
KERNEL_VERSION_LOWER_FUNCTION = "\n".join([
    "function is_kernel_version_lower() {",
    "  local IFS=$3",
    '  read -r -a lhs_array <<< "$1"',
    '  read -r -a rhs_array <<< "$2"',
    "  if [ ${#lhs_array[@]} -ne ${#rhs_array[@]} ]; then",
    '    echo "ERROR: Kernel version lengths do not match: $1 $2"',
    "    exit 1",
    "  fi",
    "  for i in ${!lhs_array[@]}; do",
    '    local lhs="${lhs_array[$i]}"',
    '    local rhs="${rhs_array[$i]}"',
    "    if [[ $lhs =~ ^[0-9]+$ && $rhs =~ ^[0-9]+$ ]]; then",
    "      if [ $lhs -lt $rhs ]; then",
    "        return 0",
    "      elif [ $lhs -gt $rhs ]; then",
    "        return 1",
    "      fi",
    "    fi",
    "  done",
    "  return 1",
    "}",
])

AL2_X86_KERNEL_PATTERN = r"^[0-9]+\.[0-9]+\.[0-9]+-[0-9]+\.[0-9]+\.amzn2\.x86_64$"
AL2_GRAVITON_KERNEL_PATTERN = r"^[0-9]+\.[0-9]+\.[0-9]+-[0-9]+\.[0-9]+\.amzn2\.aarch64$"
AL2_X86_MIN_KERNEL = "4.14.104-95.84.amzn2.x86_64"
AL2_GRAVITON_MIN_KERNEL = "4.14.181-142.260.amzn2.aarch64"


def _amazon_linux_2_commands() -> List[str]:
    return [
        KERNEL_VERSION_LOWER_FUNCTION,
        "set -x",
        "KERNEL_VERSION=$(uname -r)",
        f'if [[ "$KERNEL_VERSION" =~ {AL2_X86_KERNEL_PATTERN} ]]; then',
        f'  MIN_VER="{AL2_X86_MIN_KERNEL}"',
        f'elif [[ "$KERNEL_VERSION" =~ {AL2_GRAVITON_KERNEL_PATTERN} ]]; then',
        f'  MIN_VER="{AL2_GRAVITON_MIN_KERNEL}"',
        "else",
        '  echo "Not on Amazon Linux 2. Exiting..."; exit 1',
        "fi",
        'if is_kernel_version_lower $KERNEL_VERSION $MIN_VER ".-"; then',
        "  sudo yum -y update kernel && sudo reboot",
        "fi",
        "sudo amazon-linux-extras install -y lustre2.10",
    ]


_LUSTRE_CLIENT_INSTALLERS: Dict[LinuxDistribution, Callable[[], List[str]]] = {
    LinuxDistribution.AMAZON_LINUX_2: _amazon_linux_2_commands,
}


def is_distribution_supported(distribution: LinuxDistribution) -> bool:
    return distribution in _LUSTRE_CLIENT_INSTALLERS


def lustre_client_installation_commands(distribution: LinuxDistribution) -> List[str]:
    """
    Bash commands that install the Lustre client on the given distribution.

    Raises:
        UnsupportedDistributionError: No installation steps exist for the distribution.
    """
    installer = _LUSTRE_CLIENT_INSTALLERS.get(distribution)
    if installer is None:
        raise UnsupportedDistributionError(
            f"Linux distribution {distribution.name} is not currently supported"
        )
    return installer()


class MountableFsxLustre(MountableLinuxFilesystem):
    """
    Mounts an FSx for Lustre filesystem.

    The client installation depends on the distribution of the hosts it is
    mounted on, which is fixed when the object is created. Only
    ``LinuxDistribution.AMAZON_LINUX_2`` is currently supported; any other
    value is rejected here rather than when mounting.

    Args:
        scope: Construct used to locate the stack that owns the script bundle.
        filesystem: The Lustre filesystem to mount.
        linux_distribution: Distribution of the instances it will be mounted on.
        extra_mount_options: Lustre mount options added to ``/etc/fstab``.
        asset_cache: Cache used to share the script bundle within the stack.
    """

    BUNDLE_ID_PREFIX = "MountableFsxLustreAsset"
    BUNDLE_UUID = "0db888da-5901-4948-aaa5-e71c541c8060"
    BUNDLE_FILES = ("mountFsxLustre.sh",)

    def __init__(
        self,
        scope: Construct,
        filesystem: fsx.LustreFileSystem,
        linux_distribution: LinuxDistribution = LinuxDistribution.AMAZON_LINUX_2,
        extra_mount_options: Optional[Sequence[str]] = None,
        asset_cache: Optional[AssetCache] = None,
    ) -> None:
        if not is_distribution_supported(linux_distribution):
            raise UnsupportedDistributionError(
                f"Linux distribution {linux_distribution.name} is not currently supported"
            )
        super().__init__(scope, extra_mount_options, asset_cache)
        self.filesystem = filesystem
        self.linux_distribution = linux_distribution

    @property
    def filesystem_connectable(self) -> ec2.IConnectable:
        return self.filesystem

    @property
    def filesystem_port(self) -> ec2.Port:
        return self.filesystem.connections.default_port

    def client_installation_commands(self) -> List[str]:
        return lustre_client_installation_commands(self.linux_distribution)

    def mount_script_invocation(self, mount_dir: str, mount_options: str) -> str:
        return shell_command(
            "bash",
            "./mountFsxLustre.sh",
            self.filesystem.file_system_id,
            mount_dir,
            self.filesystem.mount_name,
            mount_options,
        )
