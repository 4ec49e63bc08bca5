class ScriptRoomError(Exception):
    pass


class TransientProviderError(ScriptRoomError):
    """Rate limit or quota signal from a provider; worth retrying after a delay."""


class PermanentProviderError(ScriptRoomError):
    """Any other provider fault. Never retried."""


class InvalidArguments(ScriptRoomError, ValueError):
    """Tool call arguments that do not match the declared schema."""


class GeneratorFailure(ScriptRoomError):
    pass


class PublishFailure(ScriptRoomError):
    pass


class BudgetExceeded(ScriptRoomError):
    pass
