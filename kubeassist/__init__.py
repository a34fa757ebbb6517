"""
kubeassist - AI assistant for Kubernetes terminal workflows.

Connects a cluster-management terminal to the GitHub Copilot agent runtime
and exposes read-only cluster diagnostics to it as callable tools.
"""

__version__ = "0.1.0"
__author__ = "kubeassist Contributors"
