"""Tests for the first-boot script template."""

import shutil
import subprocess

import pytest

from magicmail_infra.bootstrap import BootstrapScript
from magicmail_infra.bootstrap import FOUND_MARKER
from magicmail_infra.bootstrap import MISSING_MARKER


class TestRender:
    """Tests for the rendered script text."""

    def test_starts_with_shebang(self):
        assert BootstrapScript().render().startswith("#!/bin/bash\n")

    def test_permissions_use_literal_mount_point(self):
        """Test chown and chmod target the mount path itself, not a template variable."""
        lines = BootstrapScript(mount_point="/srv/gitlab-data").render().splitlines()
        assert "chown git:git /srv/gitlab-data" in lines
        assert "chmod 755 /srv/gitlab-data" in lines

    def test_ownership_set_after_package_creates_owner(self):
        """Test the git user exists (package installed) before chown runs."""
        lines = BootstrapScript().render().splitlines()
        install = lines.index('EXTERNAL_URL="http://$PUBLIC_IP" apt-get install -y gitlab-ce')
        chown = lines.index("chown git:git /var/opt/gitlab")
        assert install < chown < lines.index("chmod 755 /var/opt/gitlab")
        assert chown < lines.index("gitlab-ctl reconfigure")
        assert not any("chown" in line for line in BootstrapScript().volume_commands())

    def test_no_unexpanded_template_variables(self):
        script = BootstrapScript().render()
        assert "${" not in script
        assert "{mount" not in script
        assert "gitlabMountPoint" not in script

    def test_mount_point_used_throughout(self):
        script = BootstrapScript(mount_point="/data").render()
        assert script.count("mkdir -p /data") == 2
        assert "mount /data" in script
        assert "UUID=$UUID /data ext4 defaults,nofail,noatime 0 2" in script

    def test_format_only_without_signature(self):
        lines = BootstrapScript().volume_commands()
        probe = lines.index('  if ! blkid "$DATA_DEVICE"; then')
        assert lines[probe + 2] == '    mkfs -t ext4 -q "$DATA_DEVICE"'

    def test_poll_window(self):
        script = BootstrapScript().render()
        assert "for i in $(seq 1 60); do [ -e /dev/nvme1n1 ] && break || sleep 1; done" in script

    def test_service_setup(self):
        commands = BootstrapScript().service_commands()
        assert "apt-get install -y curl ca-certificates tzdata perl" in commands
        assert ('PUBLIC_IP=$(curl -s http://169.254.169.254/latest/meta-data/public-ipv4 '
                '|| echo "127.0.0.1")') in commands
        assert 'EXTERNAL_URL="http://$PUBLIC_IP" apt-get install -y gitlab-ce' in commands
        assert commands[-1] == "gitlab-ctl reconfigure"

    def test_volume_section_precedes_service_setup(self):
        script = BootstrapScript().render()
        assert script.index(MISSING_MARKER) < script.index("apt-get update -y")
        assert FOUND_MARKER in script

    def test_no_exit_on_error(self):
        assert "set -e" not in BootstrapScript().render()

    @pytest.mark.parametrize("mount_point", ["relative/path", "/var/opt/git lab", "/tmp/$HOME", '/a"b'])
    def test_unsafe_mount_point_rejected(self, mount_point):
        with pytest.raises(ValueError):
            BootstrapScript(mount_point=mount_point)

    def test_poll_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            BootstrapScript(poll_attempts=0)


@pytest.mark.skipif(shutil.which("bash") is None, reason="needs bash")
class TestVolumeSetup:
    """Runs the volume section of the script against a temp directory."""

    def test_missing_device_falls_back_to_root_volume(self, tmp_path):
        mount = tmp_path / "gitlab"
        fstab = tmp_path / "fstab"
        script = BootstrapScript(
            mount_point=str(mount),
            fallback_device=str(tmp_path / "nvme1n1"),
            device_glob=str(tmp_path / "by-id" / "nvme-Amazon_Elastic_Block_Store_*"),
            fstab=str(fstab),
            poll_attempts=2,
            poll_interval=0,
        )
        path = tmp_path / "volume.sh"
        path.write_text(script.render_volume_setup())

        result = subprocess.run(["bash", str(path)], capture_output=True, text=True, timeout=60)

        assert MISSING_MARKER in result.stdout
        assert FOUND_MARKER not in result.stdout
        assert mount.is_dir()
        assert not fstab.exists()
        assert result.returncode == 0
