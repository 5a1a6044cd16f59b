"""Program date sync: reconciles legacy program dates into the program store.

This package covers title normalization and matching, table snapshots and
the dry-run/apply/restore run protocol.
"""
