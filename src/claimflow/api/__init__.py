"""HTTP API for claimflow."""
