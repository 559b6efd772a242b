"""registry/ -- Member and user persistence for the member registry.

Layer rule: registry/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or auth/.
api/ and auth/ import from registry/, not the other way around.
"""
