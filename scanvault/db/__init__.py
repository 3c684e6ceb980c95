"""Document store on SQLite: connection, schema, errors, write strategies."""
