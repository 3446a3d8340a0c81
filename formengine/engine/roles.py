"""Semantic role inference for form fields.

Fields may carry an explicit ``semanticRole``. Forms authored before the
tag existed fall back to id/label substring heuristics.
"""

from typing import Optional

from formengine.schemas.form_schema import FieldType, FormField, FormModel, SemanticRole

# Checked in order; the first match wins.
_HEURISTICS: list[tuple[SemanticRole, tuple[str, ...], tuple[str, ...]]] = [
    (SemanticRole.EMAIL, ("email",), ("email",)),
    (SemanticRole.PASSWORD, ("password",), ("password",)),
    (SemanticRole.PHONE, ("phone",), ("phone",)),
    (SemanticRole.DOB, ("dob", "birth"), ("birth",)),
    (SemanticRole.NAME, ("name",), ()),
]

_VALUE_TYPES = frozenset({FieldType.TEXT, FieldType.TEXTAREA, FieldType.DATE, FieldType.NUMBER})


def infer_role(field: FormField) -> Optional[SemanticRole]:
    """Return the field's role: explicit tag first, heuristics second."""
    if field.semantic_role is not None:
        return field.semantic_role
    if field.type not in _VALUE_TYPES:
        return None

    field_id = field.id.lower()
    label = field.label.lower()
    for role, id_hints, label_hints in _HEURISTICS:
        if any(h in field_id for h in id_hints) or any(h in label for h in label_hints):
            return role
    return None


def fields_with_role(model: FormModel, role: SemanticRole) -> list[FormField]:
    """All fields with ``role``; explicitly tagged fields come first."""
    tagged = [f for f in model.iter_fields() if f.semantic_role is role]
    inferred = [
        f for f in model.iter_fields()
        if f.semantic_role is None and infer_role(f) is role
    ]
    return tagged + inferred


def first_with_role(model: FormModel, role: SemanticRole) -> Optional[FormField]:
    found = fields_with_role(model, role)
    return found[0] if found else None
