"""Backend access and change feeds."""
