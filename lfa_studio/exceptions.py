# lfa_studio/exceptions.py


class LfaStudioError(Exception):
    """Base class for every error raised by the studio core."""

    user_message = "Something went wrong."


# -----------------------
# Precondition violations ("your input was invalid")
# -----------------------

class PreconditionError(LfaStudioError):
    user_message = "Your input was invalid."


class UnknownQuestError(PreconditionError):
    def __init__(self, level_id: int, quest_id: str):
        self.level_id = level_id
        self.quest_id = quest_id
        super().__init__(f"Quest '{quest_id}' does not exist in level {level_id}")


class OutOfOrderQuestError(PreconditionError):
    user_message = "That quest is not available yet. Finish the current quest first."

    def __init__(self, level_id: int, quest_id: str, current_level: int, current_quest: int):
        self.level_id = level_id
        self.quest_id = quest_id
        self.current_level = current_level
        self.current_quest = current_quest
        super().__init__(
            f"Quest '{quest_id}' (level {level_id}) is not at the current pointer "
            f"(level {current_level}, quest {current_quest})"
        )


class InvalidPositionError(PreconditionError):
    pass


class InvalidComponentContentError(PreconditionError):
    def __init__(self, component_type: str, details: list):
        self.component_type = component_type
        self.details = details
        super().__init__(f"Invalid content for component {component_type}: {details}")


class InvalidValidationTypeError(PreconditionError):
    def __init__(self, validation_type):
        self.validation_type = validation_type
        super().__init__(f"Invalid validation type: {validation_type!r}")


# -----------------------
# Lookups
# -----------------------

class NotFoundError(LfaStudioError):
    user_message = "The requested item was not found."


# -----------------------
# Persistence ("we couldn't save")
# -----------------------

class PersistenceError(LfaStudioError):
    user_message = "We couldn't save your changes. Please try again."
