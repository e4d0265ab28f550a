"""Keyed merge of partial record batches into a document.

Used by the commit loop on the server and available to clients that want to
apply a batch to a local copy of the document exactly the way the server
will.
"""

from __future__ import annotations

from collections.abc import Sequence

from labelsync.records import POSITION_FIELD, Record, record_key


def merge_by_key(existing: Sequence[Record], incoming: Sequence[Record]) -> list[Record]:
    """Upsert ``incoming`` records into ``existing`` by key.

    - Matched records are replaced in place, keeping the position of the
      record they replace.
    - Unmatched incoming records are appended in their relative order.
    - ``"S.No"`` is recomputed for every record as its 1-based index.

    If ``incoming`` repeats a key, the last occurrence wins. Neither input is
    mutated.

    Example:
        >>> merge_by_key(
        ...     [{"filename": "a", "S.No": 1}, {"filename": "b", "S.No": 2}],
        ...     [{"filename": "b", "v": 9}, {"filename": "c"}],
        ... )
        [{'filename': 'a', 'S.No': 1}, {'filename': 'b', 'v': 9, 'S.No': 2}, {'filename': 'c', 'S.No': 3}]
    """
    pending: dict[str, Record] = {}
    for record in incoming:
        # dict keeps first-insertion order, so a repeated key stays in its
        # first slot but carries the latest value
        pending[record_key(record)] = record

    merged: list[Record] = []
    for record in existing:
        replacement = pending.pop(record_key(record), None)
        merged.append(replacement if replacement is not None else record)

    merged.extend(pending.values())
    return renumber(merged)


def renumber(records: Sequence[Record]) -> list[Record]:
    """Return copies of ``records`` with ``"S.No"`` set to the 1-based index."""
    return [{**record, POSITION_FIELD: index} for index, record in enumerate(records, start=1)]
