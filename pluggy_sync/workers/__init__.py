"""Workers package: background execution of sync jobs."""
