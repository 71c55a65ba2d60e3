"""
Runner Manager - A small control plane for local GitLab CI runners.

Registers runners through the gitlab-runner CLI, starts and stops them as
detached background processes tracked by PID files, and exposes their logs.
"""

__version__ = "0.1.0"
__author__ = "Runner Manager Developers"
