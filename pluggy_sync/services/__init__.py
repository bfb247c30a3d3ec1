"""Services package: document store contract and backends, plus the sync pipeline building blocks."""
