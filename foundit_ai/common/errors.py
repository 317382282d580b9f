class FoundItError(Exception):
    """Base exception for FoundIt operations"""
    pass


class ValidationError(FoundItError):
    """Validation error for user input"""
    pass


class NotFoundError(FoundItError):
    """Referenced report, match or user does not exist"""
    pass


class PermissionDeniedError(FoundItError):
    """Acting user is not a party to the entity"""
    pass
