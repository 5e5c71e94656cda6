"""auth/ -- Identity package for RoleGate: users, bearer tokens, password flows.

Layer rule: auth/ imports only stdlib + third-party libraries and core/.
It does NOT import from rbac/ or api/.
rbac/ and api/ import from auth/, not the other way around.
"""
