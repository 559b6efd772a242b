"""auth/ -- Session guard and password handling for the member registry.

Layer rule: auth/ imports only stdlib, third-party libraries, core/ and registry/.
It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
