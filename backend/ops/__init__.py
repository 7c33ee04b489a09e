# ops/__init__.py
"""
Ops app - health probes, structured logging and Prometheus metrics.
"""

default_app_config = "ops.apps.OpsConfig"
