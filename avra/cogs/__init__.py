"""Discord cogs that expose the game session."""
