"""Exceptions raised inside a composition run."""


class ComposerError(Exception):
    """Base class for codecomposer errors."""


class CompositionCancelled(ComposerError):
    """Raised at a chunk or node boundary once a thread's run was cancelled."""

    def __init__(self, thread_id: str):
        super().__init__(f"Composition cancelled for thread {thread_id}")
        self.thread_id = thread_id


class ThreadNotFoundError(ComposerError):
    """No checkpoint exists for the requested thread."""

    def __init__(self, thread_id: str):
        super().__init__(f"Thread not found: {thread_id}")
        self.thread_id = thread_id


class GenerationError(ComposerError):
    """The model closed a file block without any code."""

    def __init__(self, path: str):
        super().__init__(
            f"I was unable to generate code for the following file: {path}, please try again."
        )
        self.path = path


class NoFilesChangedError(ComposerError):
    """A write phase finished without producing code for any file."""

    def __init__(self):
        super().__init__(
            "I've failed to generate any code changes for this session, "
            "if this continues please clear the chat and try again."
        )
