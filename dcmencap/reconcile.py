from __future__ import annotations

import logging
from typing import Optional

from .errors import MetadataConflictError
from .fields import Field, FieldSet

logger = logging.getLogger(__name__)


def resolve(
    document_fields: Optional[FieldSet],
    reference_fields: Optional[FieldSet],
    user_fields: Optional[FieldSet],
) -> FieldSet:
    """Merge document, reference-record and user values into one FieldSet.

    Per field: a user value always wins. Otherwise document and reference values
    must agree when both are present, else :class:`MetadataConflictError`.
    Otherwise whichever is present is taken.
    """
    document_fields = document_fields or FieldSet()
    reference_fields = reference_fields or FieldSet()
    user_fields = user_fields or FieldSet()

    result = FieldSet()
    for field in Field:
        doc = document_fields.get(field)
        ref = reference_fields.get(field)
        user = user_fields.get(field)

        if user is not None:
            for source, other in (("document", doc), ("reference record", ref)):
                if other is not None and other != user:
                    logger.warning(
                        "%s: user value '%s' replaces %s value '%s'", field.value, user, source, other
                    )
            result.set(field, user)
            continue

        if doc is not None and ref is not None and doc != ref:
            raise MetadataConflictError(field, doc, ref)

        chosen = doc if doc is not None else ref
        if chosen is not None:
            logger.debug("%s taken from %s", field.value, "document" if doc is not None else "reference record")
            result.set(field, chosen)
    return result


__all__ = ["resolve"]
