"""auth/ -- Credential store, session manager, and admission layer.

Layer rule: auth/ imports stdlib, third-party libraries, and core/ only.
It does NOT import from api/ or dna/.
api/ and dna/ import from auth/, not the other way around.
"""
