from .builtin import build_registry, builtin_commands
from .registry import (
    CallbackHandler,
    CommandDescriptor,
    CommandHandler,
    CommandMatch,
    CommandRegistry,
    CommandRegistryError,
    RestartHook,
    build_pattern,
)

__all__ = [
    "CallbackHandler",
    "CommandDescriptor",
    "CommandHandler",
    "CommandMatch",
    "CommandRegistry",
    "CommandRegistryError",
    "RestartHook",
    "build_pattern",
    "build_registry",
    "builtin_commands",
]
