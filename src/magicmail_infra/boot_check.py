"""
Check how the GitLab instance's first boot went.

User data failures never reach ``pulumi up``: a deploy can succeed while
the data volume failed to mount. This reads the stack outputs, pulls the
instance console log and looks for the markers the bootstrap script prints.
"""
import sys
import json
import argparse
import subprocess

import boto3

from magicmail_infra.bootstrap import FOUND_MARKER
from magicmail_infra.bootstrap import MISSING_MARKER

MOUNTED = "mounted"
DEGRADED = "degraded"
PENDING = "pending"

EXIT_CODES = {MOUNTED: 0, DEGRADED: 1, PENDING: 2}


def stack_outputs(stack=None, cwd=None):
    cmd = ["pulumi", "stack", "output", "--json"]
    if stack:
        cmd += ["--stack", stack]
    result = subprocess.run(cmd, capture_output=True, cwd=cwd)
    if result.returncode != 0:
        print(result.stderr.decode(), file=sys.stderr)
        return None
    try:
        return json.loads(result.stdout.decode() or "{}")
    except json.JSONDecodeError:
        print(f"pulumi printed something other than JSON:\n{result.stdout.decode()}", file=sys.stderr)
        return None


def console_output(client, instance_id):
    resp = client.get_console_output(InstanceId=instance_id, Latest=True)
    return resp.get("Output") or ""


def bootstrap_state(log):
    # the degraded branch is checked first, a re-run can print both markers
    if MISSING_MARKER in log:
        return DEGRADED
    if FOUND_MARKER in log:
        return MOUNTED
    return PENDING


def main(argv=None):
    parser = argparse.ArgumentParser(description="check the GitLab instance's bootstrap result")
    parser.add_argument("stack", type=str, default=None, nargs="?",
                        help="pulumi stack name, defaults to the selected stack")
    parser.add_argument("--region", type=str, default=None,
                        help="AWS region of the stack, defaults to the AWS CLI configuration")
    parser.add_argument("--cwd", type=str, default=None,
                        help="directory holding Pulumi.yaml")
    args = parser.parse_args(argv)

    outputs = stack_outputs(args.stack, args.cwd)
    if not outputs or not outputs.get("GitLabInstanceId"):
        print("stack has no GitLabInstanceId output, has it been deployed?", file=sys.stderr)
        return EXIT_CODES[PENDING]

    instance_id = outputs["GitLabInstanceId"]
    print(f"reading console output of {instance_id}...")
    client = boto3.Session(region_name=args.region).client("ec2")
    state = bootstrap_state(console_output(client, instance_id))
    print(f"data volume: {state}")
    if "SsmCommand" in outputs:
        print(f"connect with: {outputs['SsmCommand']}")
    return EXIT_CODES[state]


if __name__ == "__main__":
    sys.exit(main())
