"""
Error taxonomy for the content pipeline.

Recovery scope per error:
  ValidationError       request rejected before any stage runs
  DiscoveryError        one seed failed — logged, the batch continues
  SynthesisError        pipeline-fatal, no draft without content
  EntityFetchError      one entity failed during fan-out — recorded, skipped
  EntityNotFoundError   CMS returned nothing for an entity id — same as above
  DraftNotFoundError    lookup of an unknown draft id
  PublishError          CMS rejected a publish — recorded per draft
"""


class PipelineError(Exception):
    """Base class for every error raised by the pipeline core."""


class ValidationError(PipelineError):
    """A GenerationRequest is missing required fields."""


class DiscoveryError(PipelineError):
    """The question discovery provider returned an error for a seed."""


class SynthesisError(PipelineError):
    """The model response was empty or could not be parsed into content."""


class EntityFetchError(PipelineError):
    """A CMS entity could not be fetched."""

    def __init__(self, entity_id: str, message: str):
        super().__init__(message)
        self.entity_id = entity_id


class EntityNotFoundError(EntityFetchError):
    def __init__(self, entity_id: str):
        super().__init__(entity_id, f"Entity {entity_id} not found")


class DraftNotFoundError(PipelineError, KeyError):
    def __init__(self, draft_id: str):
        super().__init__(f"Draft {draft_id} not found")
        self.draft_id = draft_id

    def __str__(self) -> str:
        return self.args[0]


class PublishError(PipelineError):
    """The CMS rejected an entity update."""
