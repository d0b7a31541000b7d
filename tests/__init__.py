import os

# Auth settings are read at import time; pin the in-memory backends for the suite.
os.environ.setdefault("AUTH_STORE", "memory")
os.environ.setdefault("AUDIT_PERSIST", "false")
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("FIXED_OTP", None)
