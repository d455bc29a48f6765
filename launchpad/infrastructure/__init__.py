"""gcloud invocation, command builders and report persistence."""

from .gcloud import CommandResult, GcloudCommand, GcloudError, GcloudRunner

__all__ = ["CommandResult", "GcloudCommand", "GcloudError", "GcloudRunner"]
