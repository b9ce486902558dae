"""auth/ -- Authentication and authorization package for KSMS.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/, storage/, or clusters/ at runtime.
api/ imports from auth/, not the other way around.
"""
