class SignBankError(Exception):
    """Base class for every failure the service reports to callers."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class InvalidInput(SignBankError):
    pass


class DecodeError(SignBankError):
    pass


class NotFound(SignBankError):
    pass


class StorageFailure(SignBankError):
    pass


class SlowConsumer(SignBankError):
    pass
