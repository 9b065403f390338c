"""HTTP API for the pay run engine."""
