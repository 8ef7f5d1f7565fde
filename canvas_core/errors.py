"""
Error taxonomy for the schema editor.

Every error here is surfaced to the user as a blocking notification by the
caller. None of them is retried, and the live graph is never modified
before the operation that raises has fully built its new state.
"""


class GraphEditorError(Exception):
    """Base class for all editor errors."""


class DuplicateIdError(GraphEditorError):
    """A structural add used an id that already exists."""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"Duplicate {kind} id: {entity_id}")


class FormatError(GraphEditorError):
    """An import document or generated payload has the wrong shape."""


class DanglingLinkError(FormatError):
    """A link references a node id that does not exist."""

    def __init__(self, link_id: str, missing: str):
        self.link_id = link_id
        self.missing = missing
        super().__init__(f"Link {link_id} references non-existent node: {missing}")


class ServiceError(GraphEditorError):
    """The schema generation service could not produce a response."""


class GenerationBusyError(ServiceError):
    """A generation request is already in flight."""

    def __init__(self):
        super().__init__("A schema generation request is already in progress")
