# View / download counters on content records.
# Plain read-modify-write against the content store: two concurrent
# increments of the same record can both read N and both write N + 1.

import logging

from portfolio_backend.api.content_store import ContentStore
from portfolio_backend.api.errors import NotFoundError, PortfolioError, UpstreamFailure, ValidationError

log = logging.getLogger(__name__)


def increment_counter(
    store: ContentStore,
    collection: str,
    document_id: str | None,
    field: str,
    label_field: str,
    label: str,
) -> dict:
    """Add 1 to *field* on the record and return ``{"data": ..., "meta": {...}}``.

    *label_field* is the record's display field (title or name) echoed back;
    *label* names the record type in error messages.
    """
    if not document_id:
        raise ValidationError(f"{label} ID is required")

    try:
        record = store.find_one(collection, document_id)
        if record is None:
            raise NotFoundError(f"{label} not found")
        current = record.get(field) or 0
        updated = store.update(collection, document_id, {field: current + 1})
    except PortfolioError:
        raise
    except Exception as e:
        log.error(f"Failed to increment {field} on {collection}/{document_id}: {e}")
        raise UpstreamFailure(f"Failed to increment {field.removesuffix('s')} count") from e

    log.debug(f'{field} incremented for {label} "{record.get(label_field)}": {current} -> {current + 1}')

    return {
        "data": {
            "id": updated.get("id"),
            "documentId": updated.get("documentId"),
            label_field: updated.get(label_field),
            field: updated.get(field),
        },
        "meta": {
            "previousCount": current,
            "newCount": updated.get(field),
        },
    }
