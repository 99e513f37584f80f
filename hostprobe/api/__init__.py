"""HTTP layer: app factory, request lifecycle and content negotiation."""
