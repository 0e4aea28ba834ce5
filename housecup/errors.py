class HouseCupError(Exception):
    pass


class ValidationError(HouseCupError):
    pass


class ConflictError(HouseCupError):
    pass


class NotConfiguredError(HouseCupError):
    pass


class PersistenceFailure(HouseCupError):
    pass


class NotFoundError(HouseCupError):
    pass
