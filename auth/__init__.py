"""auth/ -- Token lifecycle engine: hashing, JWTs, refresh-token persistence, AuthService.

Layer rule: auth/ imports only stdlib + third-party libraries, plus
core/monitoring for the timing-hook type. It does NOT import from api/.
api/ imports from auth/, not the other way around. auth/dependencies.py is the
one module allowed to import fastapi.
"""
