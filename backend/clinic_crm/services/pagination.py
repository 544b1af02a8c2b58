import math
from typing import Generic, List, Sequence, TypeVar

T = TypeVar("T")


class Paginator(Generic[T]):
    """
    Paginação em memória sobre uma sequência já filtrada.

    Páginas são indexadas a partir de 0. Navegação fora dos limites é ignorada
    e qualquer mudança de tamanho de página volta para a primeira página.
    """

    def __init__(self, items: Sequence[T], page_size: int, current_page: int = 0):
        self._items: Sequence[T] = items
        self._page_size = self._validate_page_size(page_size)
        self._current_page = 0
        self.go_to_page(current_page)

    @staticmethod
    def _validate_page_size(page_size: int) -> int:
        if page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {page_size}")
        return page_size

    @property
    def items(self) -> Sequence[T]:
        return self._items

    @items.setter
    def items(self, items: Sequence[T]) -> None:
        self._items = items
        self._clamp()

    @property
    def page_size(self) -> int:
        return self._page_size

    @page_size.setter
    def page_size(self, page_size: int) -> None:
        self._page_size = self._validate_page_size(page_size)
        self._current_page = 0

    @property
    def current_page(self) -> int:
        return self._current_page

    @property
    def total_count(self) -> int:
        return len(self._items)

    @property
    def total_pages(self) -> int:
        return math.ceil(len(self._items) / self._page_size)

    @property
    def has_next_page(self) -> bool:
        return self._current_page < self.total_pages - 1

    @property
    def has_previous_page(self) -> bool:
        return self._current_page > 0

    @property
    def paginated_items(self) -> List[T]:
        start = self._current_page * self._page_size
        return list(self._items[start:start + self._page_size])

    def next(self) -> None:
        if self.has_next_page:
            self._current_page += 1

    def previous(self) -> None:
        if self.has_previous_page:
            self._current_page -= 1

    def go_to_page(self, page: int) -> None:
        last_page = max(self.total_pages - 1, 0)
        self._current_page = min(max(page, 0), last_page)

    def _clamp(self) -> None:
        self.go_to_page(self._current_page)
