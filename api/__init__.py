"""api/ -- HTTP surface of RoleGate: FastAPI app, request/response models, v1 routers.

Layer rule: api/ may import from core/, auth/, and rbac/.
Nothing outside api/ (except tests/) imports from it.
"""
