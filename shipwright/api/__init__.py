"""HTTP API for Shipwright."""
