"""Built-in cleanup actions, one module per collaborator."""
