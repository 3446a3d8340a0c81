"""
Option hydration for entity-bound fields.

Practitioner and service pickers are usually authored with an empty
option list, which means "offer every live entity". Hydration fills those
empty lists from the entities fetched at session start. Options the
author configured are never overwritten.
"""

import logging
from typing import Optional, Sequence

from formengine.schemas.entity_schema import Practitioner, Service
from formengine.schemas.form_schema import (
    PRACTITIONER_BOUND_TYPES,
    FieldOption,
    FieldType,
    FormField,
    FormModel,
)

logger = logging.getLogger(__name__)

DEFAULT_SPECIALTY = "General"


def project_practitioner(practitioner: Practitioner) -> FieldOption:
    specialty = practitioner.specialties[0] if practitioner.specialties else DEFAULT_SPECIALTY
    return FieldOption(label=practitioner.name, value=practitioner.id, specialty=specialty)


def project_service(service: Service) -> FieldOption:
    return FieldOption(
        label=service.name,
        value=service.id,
        duration=service.duration,
        price=service.price,
        type=service.type,
    )


def _projected(
    field: FormField,
    practitioners: Sequence[Practitioner],
    services: Sequence[Service],
) -> Optional[list[FieldOption]]:
    if field.type == FieldType.SERVICE_SELECTION:
        return [project_service(s) for s in services] if services else None
    if field.type in PRACTITIONER_BOUND_TYPES:
        return [project_practitioner(p) for p in practitioners] if practitioners else None
    return None


def hydrate_options(
    model: FormModel,
    practitioners: Sequence[Practitioner],
    services: Sequence[Service],
) -> FormModel:
    """Return ``model`` with empty entity-bound options filled in.

    Returns the very same instance when no field needed filling, so
    repeated hydration with unchanged inputs is free.
    """
    filled: dict[str, list[FieldOption]] = {}
    for field in model.iter_fields():
        if field.options:
            continue
        options = _projected(field, practitioners, services)
        if options:
            filled[field.id] = options

    if not filled:
        return model

    steps = [
        step.model_copy(update={
            "fields": [
                f.model_copy(update={"options": filled[f.id]}) if f.id in filled else f
                for f in step.fields
            ]
        })
        for step in model.steps
    ]
    logger.debug("Hydrated options for fields: %s", sorted(filled))
    return model.model_copy(update={"steps": steps})


def effective_options(
    field: FormField,
    practitioners: Sequence[Practitioner],
    services: Sequence[Service],
) -> list[FieldOption]:
    """Options a field presents at runtime.

    An empty list on an entity-bound field stands for all live entities.
    Service options stored as bare ids (label equal to value) are resolved
    against the live catalog; unknown ids are kept as they are.
    """
    if not field.options:
        return _projected(field, practitioners, services) or []

    if field.type != FieldType.SERVICE_SELECTION or not services:
        return list(field.options)

    by_id = {s.id: s for s in services}
    resolved: list[FieldOption] = []
    for option in field.options:
        service = by_id.get(option.value)
        if service is not None and option.label == option.value:
            resolved.append(project_service(service))
        else:
            resolved.append(option)
    return resolved
