"""
hostopt

Idempotent provisioning for Debian/Ubuntu hosts (VPS, WSL2 guests and mini PCs).
"""

APP_NAME = "hostopt"
VERSION = "1.0.0"
__version__ = VERSION
