"""Kernel collaborator services used by the automation worker."""
