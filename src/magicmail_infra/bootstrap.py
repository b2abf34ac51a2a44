"""
First-boot user data for the GitLab instance.

The script is rendered from a template with named substitution points so
it can be checked (and partly executed) without provisioning anything.
Like any user data it runs once, top to bottom, with the shell's default
error behaviour: a failed step does not stop the ones after it.
"""
import re
import shlex
from dataclasses import dataclass
from typing import List, Tuple

# paths end up inside double-quoted shell strings and fstab entries,
# so only allow characters that need no escaping there
_SAFE_PATH = re.compile(r"^/[A-Za-z0-9_./-]*$")
_SAFE_GLOB = re.compile(r"^/[A-Za-z0-9_./*-]*$")

FOUND_MARKER = "Found EBS volume at"
MISSING_MARKER = "ERROR: EBS volume not found! Using root volume"


@dataclass(frozen=True)
class BootstrapScript:
    mount_point: str = "/var/opt/gitlab"
    fallback_device: str = "/dev/nvme1n1"
    device_glob: str = "/dev/disk/by-id/nvme-Amazon_Elastic_Block_Store_*"
    filesystem: str = "ext4"
    fstab: str = "/etc/fstab"
    owner: str = "git"
    mode: str = "755"
    poll_attempts: int = 60
    poll_interval: int = 1
    prerequisites: Tuple[str, ...] = ("curl", "ca-certificates", "tzdata", "perl")
    repository_script: str = "https://packages.gitlab.com/install/repositories/gitlab/gitlab-ce/script.deb.sh"
    package: str = "gitlab-ce"
    metadata_url: str = "http://169.254.169.254/latest/meta-data/public-ipv4"
    fallback_address: str = "127.0.0.1"
    reconfigure_command: str = "gitlab-ctl reconfigure"

    def __post_init__(self):
        for name in ("mount_point", "fallback_device", "fstab"):
            if not _SAFE_PATH.match(getattr(self, name)):
                raise ValueError(f"{name} must be an absolute path without shell metacharacters")
        if not _SAFE_GLOB.match(self.device_glob):
            raise ValueError("device_glob must be an absolute path pattern")
        if self.poll_attempts < 1:
            raise ValueError("poll_attempts must be at least 1")

    def volume_commands(self) -> List[str]:
        mount = shlex.quote(self.mount_point)
        device = shlex.quote(self.fallback_device)
        fs = self.filesystem
        return [
            'echo "--- Formatting and Mounting Data Volume ---"',
            # nvme devices can take a while to show up after boot
            f"for i in $(seq 1 {self.poll_attempts}); do [ -e {device} ] && break || sleep {self.poll_interval}; done",
            f"DATA_DEVICE=$(realpath {self.device_glob})",
            f'[ -b "$DATA_DEVICE" ] || DATA_DEVICE={device}',
            'if [ -b "$DATA_DEVICE" ]; then',
            f'  echo "{FOUND_MARKER} $DATA_DEVICE"',
            # never reformat a volume that already carries a filesystem
            '  if ! blkid "$DATA_DEVICE"; then',
            f'    echo "Formatting $DATA_DEVICE with {fs}"',
            f'    mkfs -t {fs} -q "$DATA_DEVICE"',
            "  fi",
            f"  mkdir -p {mount}",
            '  UUID=$(blkid -s UUID -o value "$DATA_DEVICE")',
            f'  echo "UUID=$UUID {self.mount_point} {fs} defaults,nofail,noatime 0 2" | tee -a {shlex.quote(self.fstab)}',
            f"  mount {mount}",
            "else",
            f'  echo "{MISSING_MARKER}"',
            f"  mkdir -p {mount}",
            "fi",
        ]

    def service_commands(self) -> List[str]:
        mount = shlex.quote(self.mount_point)
        return [
            'echo "--- Installing Dependencies & Setting up GitLab Repo ---"',
            "export DEBIAN_FRONTEND=noninteractive",
            "apt-get update -y",
            "apt-get install -y {}".format(" ".join(self.prerequisites)),
            f"curl -L {self.repository_script} | bash",
            "apt-get clean",
            'echo "--- Starting GitLab CE Installation ---"',
            f'PUBLIC_IP=$(curl -s {self.metadata_url} || echo "{self.fallback_address}")',
            f'EXTERNAL_URL="http://$PUBLIC_IP" apt-get install -y {self.package}',
            'echo "--- Post-Install Configuration ---"',
            # the owner only exists once the package has created it
            f"chown {self.owner}:{self.owner} {mount}",
            f"chmod {self.mode} {mount}",
            self.reconfigure_command,
        ]

    def render_volume_setup(self) -> str:
        return _as_script(self.volume_commands())

    def render(self) -> str:
        return _as_script(self.volume_commands() + self.service_commands())


def _as_script(commands):
    return "#!/bin/bash\n" + "\n".join(commands) + "\n"
