"""Domain errors raised by the drafting services."""


class DraftingError(Exception):
    """Base exception for drafting pipeline failures."""


class ProjectNotFoundError(DraftingError):
    """Raised when a project referenced by a job does not exist."""

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project with ID '{project_id}' not found")


class JobNotFoundError(DraftingError):
    """Raised when a draft job does not exist."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Draft job '{job_id}' not found")


class DocumentNotFoundError(DraftingError):
    """Raised when a surgical edit targets a project without a document."""

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(
            f"Document not found for surgical section edit (project '{project_id}')"
        )


class SectionNotFoundError(DraftingError):
    """Raised when a surgical edit targets a heading the document lacks."""

    def __init__(self, heading: str):
        self.heading = heading
        super().__init__(
            f'Section "{heading}" not found. Use manage_outline to add new sections first.'
        )
