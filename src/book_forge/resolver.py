"""Model resolution: task + preference + credentials -> catalog entry."""

import logging

from .catalog import AIProfile, ModelAssignment, ModelCatalog, ModelDescriptor, TaskProfile
from .credentials import CredentialStore

logger = logging.getLogger(__name__)


class ModelResolver:
    """Pick the model for a call.

    Resolution order: an explicit model id, then the preferred profile, then
    the assignment profile of the task family. When the chosen provider has
    no credential the first credentialed provider in the fallback order that
    serves a text model wins. Never raises for a known task.
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        credentials: CredentialStore,
        assignment: ModelAssignment | None = None,
    ):
        self.catalog = catalog
        self.credentials = credentials
        self.assignment = assignment or ModelAssignment()

    def resolve(
        self,
        task: TaskProfile,
        explicit_model_id: str | None = None,
        preference: AIProfile | None = None,
    ) -> ModelDescriptor:
        model = self._select(task, explicit_model_id, preference)

        if self.credentials.has(model.provider):
            return model

        fallback = self._fallback()
        if fallback is None:
            logger.warning(
                f"No credentialed provider for {task.value}; keeping {model.id} ({model.provider})"
            )
            return model

        logger.info(
            f"Provider {model.provider} has no credential, falling back to "
            f"{fallback.id} ({fallback.provider}) for {task.value}"
        )
        return fallback

    def _select(
        self,
        task: TaskProfile,
        explicit_model_id: str | None,
        preference: AIProfile | None,
    ) -> ModelDescriptor:
        if explicit_model_id:
            model = self.catalog.get(explicit_model_id)
            if model is not None:
                return model
            logger.warning(
                f"Unknown model {explicit_model_id}, using default for {task.value}"
            )
            return self.catalog.default_for(task)

        profile = preference or self.assignment.profile_for(task)
        model_id = self.catalog.model_for_profile(profile, task)
        model = self.catalog.get(model_id)
        if model is None:
            return self.catalog.default_for(task)
        return model

    def _fallback(self) -> ModelDescriptor | None:
        for provider in self.catalog.fallback_order:
            if not self.credentials.has(provider):
                continue
            for model in self.catalog.models_for_provider(provider):
                if model.supports("text"):
                    return model
        return None
