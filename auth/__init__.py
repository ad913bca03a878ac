"""auth/ -- Credentials, sessions and identity resolution for sitegate.

Layer rule: auth/ imports only stdlib + third-party libraries, plus core/.
It does NOT import from api/, web/, or certs/.
api/ and web/ import from auth/, not the other way around.
"""
