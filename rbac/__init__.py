"""rbac/ -- Role-based access control for RoleGate.

Permission graph, access enforcement, admin mutations, and default seeding.

Layer rule: rbac/ imports from core/ and auth/ only.
It does NOT import from api/.
"""
