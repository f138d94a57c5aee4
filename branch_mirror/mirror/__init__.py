"""
Mirror Integration — Keep Azure DevOps branches in step with the source repo.

This module resolves parent branches from mirror tags, applies ref
creations/deletions through the Azure refs API, and records what has
been mirrored in the source repository's tags.
"""
