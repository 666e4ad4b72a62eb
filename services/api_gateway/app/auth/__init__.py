"""Authentication collaborator client."""
