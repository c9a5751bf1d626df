"""
Dump Migrator

A data migration engine for moving records out of legacy SQL dumps and
into the current hospital record schema.

Supports:
- Parsing SQL INSERT dumps (MySQL / PostgreSQL style) into rows
- Previewing a dump with a suggested column mapping
- Validating remapped rows against target field rules
- Insert-or-update reconciliation by natural key
- In-memory and PostgREST datastores
"""

__version__ = "0.1.0"
