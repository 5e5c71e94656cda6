"""core/ -- Kernel package for RoleGate: settings, error taxonomy, paginated listing.

Layer rule: core/ imports only stdlib + third-party libraries.
It does NOT import from auth/, rbac/, or api/.
Every other package imports from core/, never the other way around.
"""
