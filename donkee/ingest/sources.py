from typing import Iterator, Sequence, Tuple

from donkee.config import Settings
from donkee.services.types import Source, SourceKind


class SourceEnumerator:
    """
    The sources polled in one ingestion run: the search query first, then
    every list in configured order.

    Iterable any number of times; each pass yields the same sources lazily.
    """

    def __init__(self, query: str, list_ids: Sequence[str]):
        self.query = query
        self.list_ids: Tuple[str, ...] = tuple(list_ids)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SourceEnumerator":
        return cls(settings.search_query, settings.list_ids)

    def __iter__(self) -> Iterator[Source]:
        yield Source(kind=SourceKind.QUERY, identifier=self.query)
        for list_id in self.list_ids:
            yield Source(kind=SourceKind.LIST, identifier=list_id)

    def __len__(self) -> int:
        return 1 + len(self.list_ids)
