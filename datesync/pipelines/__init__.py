"""Matching, date parsing and sync pipelines.

Each step is callable on its own so dry-runs, tests and the CLI can reuse
the same code (normalize -> score -> match -> plan -> write).
"""
