"""Base chain primitives — keys, scripts, transactions and digests."""
