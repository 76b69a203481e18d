"""Server-side grid services: table definitions, query engine and registry."""
