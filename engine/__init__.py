"""
Maintenance Intake - Engine Package

Infrastructure shared by the intake workflow, the API and the CLI:
  - engine.db: SQLite / Postgres backend, transactions, advisory locks
  - engine.errors: IntakeError hierarchy (code, retryable, field, http_status)
  - engine.logging: JSON structured logging with per-submission trace ids
  - engine.config: layered YAML config with MI_* environment overrides
"""
