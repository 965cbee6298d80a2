"""On-disk ledger schema version, stored in ``PRAGMA user_version``."""

SCHEMA_VERSION = 1
