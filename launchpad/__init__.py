"""Provision a spot TPU VM, Workbench notebook and GKE cluster with gcloud."""

__version__ = "0.1.0"
