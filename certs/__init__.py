"""certs/ -- Host allowlist and per-host TLS certificates.

Layer rule: certs/ imports from core/ only. It runs on the TLS handshake
path and never sees HTTP requests.
"""
