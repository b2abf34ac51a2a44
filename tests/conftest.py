"""Pytest configuration and fixtures."""

import pulumi

from pulumi_mocks import MOCKS

# must be in place before any resource is declared
pulumi.runtime.set_mocks(MOCKS, project="magicmail-infra", stack="staging", preview=False)
