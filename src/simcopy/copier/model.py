# Copyright (c) Syntropy Systems
"""Model copier."""

from __future__ import annotations

import logging

from simcopy import digest
from simcopy.copier.base import CopyOutcome, EntityCopier

logger = logging.getLogger(__name__)


class ModelCopier(EntityCopier):
    """Find model in destination by digest or insert model definition."""

    kind = "model"

    def copy(self) -> CopyOutcome:
        model = self.source.model()
        if not model.digest:
            model = model.model_copy(update={"digest": digest.model_digest(model)})
            logger.info("model %s digest computed: %s", model.name, model.digest)

        model_id = self.resolver.resolve_model(model.digest, model.name)
        if model_id is not None:
            logger.info("model %s %s already exists", model.name, model.digest)
            return CopyOutcome(self.kind, model.name, model_id, already_exists=True)

        model_id = self.target.create_model(model)
        logger.info("model %s %s copied", model.name, model.digest)
        return CopyOutcome(self.kind, model.name, model_id)
