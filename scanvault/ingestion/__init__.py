"""
Export ingestion: canonical headers, CSV text decoding, row parsing, scan persistence.

Modules
-------
fields          Canonical header keys and alias lookup.
csv_text        Delimiter detection and quote-aware splitting of raw export text.
row_parser      Raw rows to typed player/guild records with skip counters.
scan_persister  Create-only scan documents with per-key results.
"""
