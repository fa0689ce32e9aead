"""auth/ -- Credential and one-time-code lifecycle for CodeGate.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or categories/.
api/ imports from auth/, not the other way around.
"""
