"""Provisioning steps and their orchestration."""
