"""Failure taxonomy for the self-check endpoint.

Every error carries the HTTP status it maps to. Client errors (4xx) expose
their message to the caller; server errors (5xx) are reported with a generic
message and their detail only reaches the server log.
"""

INTERNAL_ERROR_MESSAGE = "Internal server error"


class SelfCheckError(Exception):
    status_code = 500

    @property
    def public_message(self) -> str:
        if self.status_code >= 500:
            return INTERNAL_ERROR_MESSAGE
        return str(self)


class InputValidationError(SelfCheckError):
    status_code = 400


class InvalidProof(SelfCheckError):
    status_code = 400


class UnsupportedNetwork(SelfCheckError):
    status_code = 400

    def __init__(self, name: str):
        super().__init__("Unsupported chain")
        self.name = name


class ContractNotDeployed(SelfCheckError):
    status_code = 400

    def __init__(self, name: str):
        super().__init__("Contract not deployed on this chain")
        self.name = name


class SelfCheckNotAllowed(SelfCheckError):
    status_code = 400

    def __init__(self):
        super().__init__("Task does not allow self-check")


class ReviewRejected(SelfCheckError):
    """The automated review turned the proof down; its comment is shown verbatim."""

    status_code = 400

    def __init__(self, comment: str):
        super().__init__(comment)
        self.comment = comment


class ChainReadError(SelfCheckError):
    pass


class TaskConfigError(SelfCheckError):
    pass


class ReviewError(SelfCheckError):
    pass


class ReviewTimeout(ReviewError):
    pass


class InvalidSignerConfiguration(SelfCheckError):
    pass
