from __future__ import annotations


class StoreError(RuntimeError):
    pass


class SettingsPersistenceError(StoreError):
    def __init__(self, message: str = "settings persistence failed") -> None:
        super().__init__(message)


class GenerationError(RuntimeError):
    pass


class ReplyStateError(RuntimeError):
    pass


class MissingArgumentError(ValueError):
    def __init__(self, command: str, argument: str) -> None:
        super().__init__(f"/{command} requires the '{argument}' argument")
        self.command = command
        self.argument = argument
