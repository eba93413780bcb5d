from __future__ import annotations


class TypedSandboxError(RuntimeError):
    """Base class for typed operational errors surfaced to users."""

    error_code = "INTERNAL_ERROR"
    failure_class = "internal"
    user_message = "An internal error occurred."

    def metadata(self) -> dict[str, str]:
        return {
            "error_code": self.error_code,
            "failure_class": self.failure_class,
            "user_message": self.user_message,
        }

    def payload(self) -> dict[str, str]:
        payload = self.metadata()
        payload["detail"] = str(self)
        return payload


class ConfigUnavailableError(TypedSandboxError):
    """Configuration root cannot be resolved or created."""

    error_code = "CONFIG_UNAVAILABLE"
    failure_class = "configuration"
    user_message = "Configuration directory is unavailable."


class ConfigError(TypedSandboxError):
    """Configuration parsing or validation error."""

    error_code = "CONFIG_ERROR"
    failure_class = "configuration"
    user_message = "Configuration is invalid."


class EngineUnreachableError(TypedSandboxError):
    """Container engine daemon is not responding."""

    error_code = "ENGINE_UNREACHABLE"
    failure_class = "engine"
    user_message = "Docker is not running. Please start Docker and try again."


class EngineCommandError(TypedSandboxError):
    """Container engine command exited non-zero."""

    error_code = "ENGINE_COMMAND_FAILED"
    failure_class = "engine"
    user_message = "Container engine command failed."


class InvalidPortSpecError(TypedSandboxError):
    """Port mapping does not match PORT, HOST:CONTAINER or IP:HOST:CONTAINER."""

    error_code = "INVALID_PORT_SPEC"
    failure_class = "user_input"
    user_message = "Invalid port mapping."


class NoDerivableNameError(TypedSandboxError):
    """No folder yields a usable container name."""

    error_code = "NO_DERIVABLE_NAME"
    failure_class = "user_input"
    user_message = "Could not derive container name from folders."


class RegistryCorruptError(TypedSandboxError):
    """Persisted registry document is malformed."""

    error_code = "REGISTRY_CORRUPT"
    failure_class = "state"
    user_message = "Registry file is malformed and was reset."


class ContainerMissingError(TypedSandboxError):
    """Container does not exist."""

    error_code = "CONTAINER_MISSING"
    failure_class = "container_state"
    user_message = "Container does not exist. Use 'run' to create it."


class ContainerNotRunningError(TypedSandboxError):
    """Container exists but is not running."""

    error_code = "CONTAINER_NOT_RUNNING"
    failure_class = "container_state"
    user_message = "Container is not running. Use 'run' to start it."


class SessionNotFoundError(TypedSandboxError):
    """Named session has no recorded conversation."""

    error_code = "SESSION_NOT_FOUND"
    failure_class = "user_input"
    user_message = "Named session not found."


class FolderUnavailableError(TypedSandboxError):
    """Project folder cannot be accessed."""

    error_code = "FOLDER_UNAVAILABLE"
    failure_class = "user_input"
    user_message = "Project folder cannot be accessed."
