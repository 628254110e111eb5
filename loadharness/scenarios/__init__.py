"""Default workloads: the HTTP API flow and the real-browser flow."""
