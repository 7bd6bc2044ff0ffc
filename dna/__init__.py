"""dna/ -- Subsequence lookup service gated by the auth Validator capability.

Layer rule: dna/ may import core/ and the Validator/error types from auth/.
It does NOT import from api/.
"""
