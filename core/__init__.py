"""
CORE LAYER CONTRACT

This package contains the data-access core: active record base,
query builder, lifecycle event registry and the connection provider.

RULES:
- Values always travel as bound parameters, never interpolated
- Identifiers are validated and quoted before they reach SQL
- Builder state is single-use and reset by every terminal operation
- Driver errors are translated to DataAccessError and never swallowed

LAYER RESPONSIBILITY:
- ActiveRecordError hierarchy
- DatabaseManager (psycopg2) and its Protocol
- QueryBuilder, Model, EventRegistry, Page

CROSS-LAYER RESTRICTIONS:
- No HTTP, CLI or migration code
- No domain entities (see models/)

If you need a concrete entity, define it in models/.
"""
