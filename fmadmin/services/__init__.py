"""Profile sessions coordinating local edits with the backend."""
