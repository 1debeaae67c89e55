"""LoadHunter — freight load-email ingestion and hunt matching."""
