"""Calculator Agent: an A2A capability provider for arithmetic."""
