from __future__ import annotations


class EngineError(RuntimeError):
    pass


class EngineUnavailableError(EngineError):
    def __init__(self, label: str, command: str, install_hint: str):
        self.label = label
        self.command = command
        self.install_hint = install_hint
        super().__init__(
            f'{label} CLI command "{command}" not found or not executable. {install_hint}'
        )


class UnknownEngineError(EngineError, ValueError):
    def __init__(self, name: str, valid: list[str]):
        self.name = name
        self.valid = valid
        super().__init__(f'Unknown engine "{name}". Supported: {", ".join(valid)}')


class AgentCallError(EngineError):
    pass
