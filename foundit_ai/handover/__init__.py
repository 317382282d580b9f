from .protocol import HandoverProtocol  # noqa: F401  (re-export)
