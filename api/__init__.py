"""api/ -- FastAPI transport for the auth and dna services."""
