from .machine import MAX_ATTEMPTS, VerificationMachine  # noqa: F401  (re-export)
