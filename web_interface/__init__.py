"""Flask HTTP surface for the runtime orchestrator."""
