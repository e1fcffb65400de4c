"""Claude inference: prompts, answer schemas and the client adapter."""
