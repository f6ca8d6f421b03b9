"""ingest package: sync coordination, host crash import and the imported-event pool."""
