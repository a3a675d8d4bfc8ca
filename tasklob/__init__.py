"""Task Lob: split multi-topic input into classified, resolved, enriched work items."""
