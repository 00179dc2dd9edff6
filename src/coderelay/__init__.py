"""Remote code runner client with an interactive terminal session."""
