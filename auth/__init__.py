"""auth/ -- Authentication and session package for ChefFlow.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or core/; configuration is passed in.
api/ imports from auth/, not the other way around.
"""
