"""
Menu/POS synchronization and cost propagation service.

- schemas: document and report models
- store/: document store adapters (memory, SQL)
- models/: SQLAlchemy tables for the SQL store
- services/: derivation, reconciliation, cost propagation
- routers/: HTTP surface
- core/: service container, lifespan, CORS
"""
