"""
Check the Kubernetes manifests of an application against the API schema of a cluster before deploying them.
"""

__version__ = "0.1.0"
