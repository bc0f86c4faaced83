"""Planning core services and upstream clients."""
