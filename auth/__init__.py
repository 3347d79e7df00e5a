"""auth/ -- Forward-authentication core for simpleauth.

Token codec, credential store, request classifier and decision engine.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or core/.
api/ imports from auth/, not the other way around.
"""
